"""Shared fixtures and fakes for procgov tests."""

import logging
from email.message import EmailMessage

import psutil
import pytest

from procgov.models import LoadSnapshot, ProcessEntry, ProcessSample
from procgov.policy import Threshold, ThresholdPolicy


def make_sample(**overrides) -> ProcessSample:
    """Build a ProcessSample with harmless defaults."""
    values = {
        "pid": 4242,
        "owner": "alice",
        "cpu_percent": 0.0,
        "memory_percent": 0.0,
        "elapsed_seconds": 0,
        "nice": 0,
        "command_line": "/usr/bin/python3 crunch.py",
    }
    values.update(overrides)
    return ProcessSample(**values)


def make_entry(sample: ProcessSample, cpu_percent: float | None = None) -> ProcessEntry:
    """Build the table row matching a sample."""
    return ProcessEntry(
        pid=sample.pid,
        cpu_percent=sample.cpu_percent if cpu_percent is None else cpu_percent,
        memory_percent=sample.memory_percent,
    )


class FakeSource:
    """In-memory snapshot source."""

    def __init__(self, samples=(), load=LoadSnapshot(load_average=10.0, free_memory_mb=100)):
        self.samples = {sample.pid: sample for sample in samples}
        self.entries = [make_entry(sample) for sample in samples]
        self.current_load = load
        self.load_calls = 0
        self.table_calls = 0
        self.detail_calls: list[int] = []

    def load(self) -> LoadSnapshot:
        self.load_calls += 1
        return self.current_load

    def processes(self) -> list[ProcessEntry]:
        self.table_calls += 1
        return list(self.entries)

    def detail(self, pid: int) -> ProcessSample | None:
        self.detail_calls.append(pid)
        return self.samples.get(pid)


class FakeProcess:
    """
    Stand-in for psutil.Process.

    ``dies_on`` names the signals the process obeys: "term", "kill", or both.
    """

    def __init__(self, pid: int = 4242, dies_on=("term", "kill"), gone: bool = False, started: float = 0.0):
        self.pid = pid
        self.started = started
        self.dies_on = set(dies_on)
        self.alive = not gone
        self.signals: list[str] = []
        self.niceness = 0
        self.deny = False

    def _check(self) -> None:
        if not self.alive:
            raise psutil.NoSuchProcess(self.pid)
        if self.deny:
            raise psutil.AccessDenied(self.pid)

    def create_time(self) -> float:
        if not self.alive:
            raise psutil.NoSuchProcess(self.pid)
        return self.started

    def terminate(self) -> None:
        self._check()
        self.signals.append("term")
        if "term" in self.dies_on:
            self.alive = False

    def kill(self) -> None:
        self._check()
        self.signals.append("kill")
        if "kill" in self.dies_on:
            self.alive = False

    def nice(self, value: int | None = None) -> int:
        self._check()
        if value is not None:
            self.niceness = value
        return self.niceness

    def is_running(self) -> bool:
        return self.alive

    def status(self) -> str:
        if not self.alive:
            raise psutil.NoSuchProcess(self.pid)
        return psutil.STATUS_RUNNING


class FakeTransport:
    """Records sent messages and returns canned mailer output."""

    def __init__(self, output: str = "", error: Exception | None = None):
        self.output = output
        self.error = error
        self.sent: list[EmailMessage] = []

    def send(self, message: EmailMessage) -> str:
        if self.error is not None:
            raise self.error
        self.sent.append(message)
        return self.output


@pytest.fixture
def policy() -> ThresholdPolicy:
    """renice(30,30) / killCpu(30,600) / killMem(50,0)."""
    return ThresholdPolicy(
        renice_cpu=Threshold(threshold=30.0, duration=30),
        kill_cpu=Threshold(threshold=30.0, duration=600),
        kill_memory=Threshold(threshold=50.0, duration=0),
    )


@pytest.fixture(autouse=True)
def reset_procgov_logger():
    """Undo setup_logging so caplog keeps seeing procgov records."""
    yield
    logger = logging.getLogger("procgov")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
