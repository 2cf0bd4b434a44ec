"""Carrying out renice and termination decisions against live processes."""

import logging
import time
from collections.abc import Callable

import psutil

from procgov.models import LOWEST_PRIORITY, ActionDecision, ActionKind, ActionOutcome, ProcessSample

logger = logging.getLogger(__name__)

# Wait after each signal before checking liveness.
SIGNAL_SETTLE_SECONDS = 0.25
# Extra grace given to a process that survived SIGTERM before SIGKILL.
GRACE_SECONDS = 3.0
# Start times closer than this belong to the same process.
START_TIME_TOLERANCE = 0.01


def _is_alive(proc: psutil.Process) -> bool:
    """Zombies count as dead: they are only waiting to be reaped."""
    try:
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.ZombieProcess):
        return False
    except psutil.AccessDenied:
        return True


class EscalationExecutor:
    """
    Applies an ActionDecision to the live OS.

    The process is reopened by pid and its start time compared with the
    sampled one first, so a pid reused by a new process is left alone and
    reported as vanished.

    Renice lowers the process to the lowest scheduling priority. Kill
    decisions send SIGTERM, give the process a short and then a longer
    grace period, and fall back to SIGKILL. A process that survives both
    is reported as a failed outcome; no further retries are made.

    In pretend mode nothing is changed and every outcome succeeds.
    """

    def __init__(
        self,
        pretend: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        process_factory: Callable[[int], psutil.Process] = psutil.Process,
    ) -> None:
        """
        Initialize the EscalationExecutor.

        Args:
            pretend: Log decisions without touching any process.
            sleep: Blocking wait used between signals.
            process_factory: Builds a process handle from a pid.
        """
        self._pretend = pretend
        self._sleep = sleep
        self._process_factory = process_factory

    @property
    def pretend(self) -> bool:
        """Whether OS mutation is disabled."""
        return self._pretend

    def execute(self, decision: ActionDecision) -> ActionOutcome:
        """Carry out a decision and report what happened."""
        if decision.kind is ActionKind.NONE:
            return ActionOutcome(succeeded=True, diagnostic="no action")

        pid = decision.sample.pid
        if self._pretend:
            logger.info("would %s pid %d (%s)", decision.kind.value, pid, decision.sample.owner)
            return ActionOutcome(succeeded=True, diagnostic="pretend")

        if decision.kind.is_kill:
            return self._terminate(decision.sample)
        return self._renice(decision.sample)

    def _open(self, sample: ProcessSample) -> psutil.Process:
        """
        Get a handle on the sampled process.

        Raises:
            psutil.NoSuchProcess: If the pid is gone or now names another process.
        """
        proc = self._process_factory(sample.pid)
        if sample.create_time and abs(proc.create_time() - sample.create_time) > START_TIME_TOLERANCE:
            logger.debug("pid %d was reused by a newer process", sample.pid)
            raise psutil.NoSuchProcess(sample.pid)
        return proc

    def _renice(self, sample: ProcessSample) -> ActionOutcome:
        """Drop a process to the lowest priority."""
        pid = sample.pid
        try:
            self._open(sample).nice(LOWEST_PRIORITY)
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            return ActionOutcome(succeeded=False, diagnostic="process exited", vanished=True)
        except (psutil.AccessDenied, OSError) as exc:
            return ActionOutcome(succeeded=False, diagnostic=f"renice of pid {pid} failed: {exc}")

        logger.info("reniced pid %d to %d", pid, LOWEST_PRIORITY)
        return ActionOutcome(succeeded=True, diagnostic=f"reniced to {LOWEST_PRIORITY}")

    def _terminate(self, sample: ProcessSample) -> ActionOutcome:
        """SIGTERM, wait, SIGKILL, verify."""
        pid = sample.pid
        try:
            proc = self._open(sample)
            proc.terminate()
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            return ActionOutcome(succeeded=False, diagnostic="process exited", vanished=True)
        except (psutil.AccessDenied, OSError) as exc:
            return ActionOutcome(succeeded=False, diagnostic=f"SIGTERM to pid {pid} failed: {exc}")

        self._sleep(SIGNAL_SETTLE_SECONDS)
        if not _is_alive(proc):
            logger.info("pid %d exited after SIGTERM", pid)
            return ActionOutcome(succeeded=True, diagnostic="terminated")

        self._sleep(GRACE_SECONDS)
        try:
            proc.kill()
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            logger.info("pid %d exited during grace period", pid)
            return ActionOutcome(succeeded=True, diagnostic="terminated")
        except (psutil.AccessDenied, OSError) as exc:
            return ActionOutcome(succeeded=False, diagnostic=f"SIGKILL to pid {pid} failed: {exc}")

        self._sleep(SIGNAL_SETTLE_SECONDS)
        if _is_alive(proc):
            return ActionOutcome(
                succeeded=False,
                diagnostic=f"pid {pid} still alive after SIGKILL (uninterruptible?)",
            )

        logger.info("pid %d killed with SIGKILL", pid)
        return ActionOutcome(succeeded=True, diagnostic="killed")
