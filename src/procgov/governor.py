"""The governor loop: gate, sample, classify, act, notify, sleep."""

import logging
import os
import signal
import threading
from collections.abc import Callable
from typing import Protocol

from procgov.config import ConfigError, GovernorConfig
from procgov.exemptions import is_exempt
from procgov.executor import EscalationExecutor
from procgov.logs import set_pretend
from procgov.models import (
    ActionDecision,
    ActionKind,
    ActionOutcome,
    LoadSnapshot,
    ProcessEntry,
    ProcessSample,
)
from procgov.notify import NotificationDispatcher, SendmailTransport, SmtpTransport
from procgov.policy import classify, prefilter_floor
from procgov.snapshot import format_elapsed

logger = logging.getLogger(__name__)


class SnapshotSource(Protocol):
    """What the governor needs to inspect the host."""

    def load(self) -> LoadSnapshot: ...

    def processes(self) -> list[ProcessEntry]: ...

    def detail(self, pid: int) -> ProcessSample | None: ...


def build_executor(config: GovernorConfig) -> EscalationExecutor:
    """Create the executor for a configuration."""
    return EscalationExecutor(pretend=config.pretend)


def build_dispatcher(config: GovernorConfig) -> NotificationDispatcher:
    """Create the notification dispatcher for a configuration."""
    if config.smtp_host:
        transport = SmtpTransport(config.smtp_host)
    else:
        transport = SendmailTransport(config.sendmail_command)
    return NotificationDispatcher(
        transport,
        mail_from=config.mail_from,
        mail_bcc=config.mail_bcc,
        lookup_command=config.email_lookup_command,
        mail_domain=config.mail_domain,
        pretend=config.pretend,
    )


class Governor:
    """
    Cyclic orchestrator of the governance pipeline.

    Each cycle reads the load gate and, when the host is under pressure,
    evaluates every candidate process in snapshot order. Candidates are
    handled one at a time; a failure in one never aborts the rest.

    Reload and shutdown are cooperative: the request methods only set a
    flag and wake the inter-cycle wait. Both are safe to call from a
    signal handler and may be called any number of times.
    """

    def __init__(
        self,
        config: GovernorConfig,
        source: SnapshotSource,
        reload: Callable[[], GovernorConfig] | None = None,
        executor_factory: Callable[[GovernorConfig], EscalationExecutor] = build_executor,
        dispatcher_factory: Callable[[GovernorConfig], NotificationDispatcher] = build_dispatcher,
        own_pid: int | None = None,
    ) -> None:
        """
        Initialize the Governor.

        Args:
            config: Initial policy and run settings.
            source: Process and load inspection.
            reload: Returns a fresh configuration when a reload is requested.
            executor_factory: Builds the executor for a configuration.
            dispatcher_factory: Builds the notification dispatcher for a configuration.
            own_pid: Pid to never act on. Defaults to this process.
        """
        self._source = source
        self._reload = reload
        self._executor_factory = executor_factory
        self._dispatcher_factory = dispatcher_factory
        self._own_pid = os.getpid() if own_pid is None else own_pid
        self._wake = threading.Event()
        self._reload_requested = False
        self._shutdown_requested = False
        self._apply(config)

    @property
    def config(self) -> GovernorConfig:
        """The configuration currently in force."""
        return self._config

    def _apply(self, config: GovernorConfig) -> None:
        self._config = config
        set_pretend(config.pretend)
        self._executor = self._executor_factory(config)
        self._dispatcher = self._dispatcher_factory(config)

    def request_reload(self) -> None:
        """Ask the loop to reload its configuration at the next cycle start."""
        self._reload_requested = True
        self._wake.set()

    def request_shutdown(self) -> None:
        """Ask the loop to stop at the next checkpoint."""
        self._shutdown_requested = True
        self._wake.set()

    def run(self) -> None:
        """Run cycles until shutdown, or exactly one cycle when not looping."""
        logger.info("governor started (pid %d)", self._own_pid)
        try:
            while not self._shutdown_requested:
                if self._reload_requested:
                    self._do_reload()

                self.run_cycle()

                if not self._config.loop or self._shutdown_requested:
                    break
                if not self._reload_requested:
                    self._wake.wait(timeout=self._config.loop_interval)
                self._wake.clear()
        finally:
            logger.info("exiting")

    def _do_reload(self) -> None:
        self._reload_requested = False
        if self._reload is None:
            logger.warning("reload requested but no configuration source is set")
            return
        try:
            config = self._reload()
        except ConfigError as exc:
            logger.error("reload failed, keeping previous configuration: %s", exc)
            return
        self._apply(config)
        logger.info("configuration reloaded")

    def is_gated(self, load: LoadSnapshot) -> bool:
        """True when the host is not under pressure and the cycle can be skipped."""
        return (
            load.load_average < self._config.load_trigger
            and load.free_memory_mb > self._config.free_memory_trigger_mb
        )

    def run_cycle(self) -> list[tuple[ActionDecision, ActionOutcome]]:
        """
        Perform one cycle.

        Returns:
            The decisions acted on in this cycle with their outcomes.
        """
        load = self._source.load()
        if self.is_gated(load):
            logger.debug(
                "load %.2f, %d MB free: below triggers, skipping cycle",
                load.load_average,
                load.free_memory_mb,
            )
            return []

        floor = prefilter_floor(self._config.thresholds)
        candidates = [
            entry
            for entry in self._source.processes()
            if entry.pid != self._own_pid
            and (entry.cpu_percent > floor or entry.memory_percent > floor)
        ]
        logger.debug(
            "load %.2f, %d MB free: %d candidate(s)",
            load.load_average,
            load.free_memory_mb,
            len(candidates),
        )

        results: list[tuple[ActionDecision, ActionOutcome]] = []
        for entry in candidates:
            if self._shutdown_requested:
                break
            try:
                result = self._govern(entry.pid)
            except Exception:
                logger.exception("unexpected error while governing pid %d", entry.pid)
                continue
            if result is not None:
                results.append(result)
        return results

    def _govern(self, pid: int) -> tuple[ActionDecision, ActionOutcome] | None:
        """Classify, execute and notify for a single process."""
        sample = self._source.detail(pid)
        if sample is None:
            return None
        if is_exempt(sample, self._config.exemptions):
            logger.debug("pid %d (%s) is exempt", pid, sample.owner)
            return None

        decision = classify(sample, self._config.thresholds)
        if decision.kind is ActionKind.NONE:
            return None

        logger.info(
            "%s: pid %d user %s cpu %.1f%% mem %.1f%% elapsed %s: %s",
            decision.kind.value,
            pid,
            sample.owner,
            sample.cpu_percent,
            sample.memory_percent,
            format_elapsed(sample.elapsed_seconds),
            sample.command_line,
        )
        outcome = self._executor.execute(decision)

        if outcome.vanished:
            logger.debug("pid %d exited before %s", pid, decision.kind.value)
        elif not outcome.succeeded:
            logger.warning("%s of pid %d failed: %s", decision.kind.value, pid, outcome.diagnostic)
        else:
            self._dispatcher.notify(decision, outcome, sample)
        return decision, outcome


def install_signal_handlers(governor: Governor) -> None:
    """
    Bind SIGHUP to reload and SIGTERM/SIGINT to shutdown.

    Handlers installed with signal.signal stay in place after firing, so
    every SIGHUP triggers a reload.
    """
    signal.signal(signal.SIGHUP, lambda signum, frame: governor.request_reload())
    signal.signal(signal.SIGTERM, lambda signum, frame: governor.request_shutdown())
    signal.signal(signal.SIGINT, lambda signum, frame: governor.request_shutdown())
