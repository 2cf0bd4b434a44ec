"""Data models for procgov."""

from dataclasses import dataclass
from enum import Enum

# Lowest scheduling priority a process can be reniced to.
LOWEST_PRIORITY = 19

SUPERUSER = "root"


@dataclass(slots=True, frozen=True)
class LoadSnapshot:
    """Host-wide load reading used by the cycle gate."""

    load_average: float  # 1-minute load average
    free_memory_mb: int


@dataclass(slots=True, frozen=True)
class ProcessEntry:
    """One row of the full process table, used only for pre-filtering."""

    pid: int
    cpu_percent: float  # instantaneous, since the previous table read
    memory_percent: float


@dataclass(slots=True, frozen=True)
class ProcessSample:
    """Authoritative reading of a single process at a sampling instant."""

    pid: int
    owner: str
    cpu_percent: float  # cumulative over the process lifetime
    memory_percent: float
    elapsed_seconds: int
    nice: int
    command_line: str
    create_time: float = 0.0  # epoch seconds; with pid, identifies the process


class ActionKind(Enum):
    """What the governor decided to do with a process."""

    NONE = "none"
    RENICE = "renice"
    KILL_CPU = "kill-cpu"
    KILL_MEMORY = "kill-memory"

    @property
    def is_kill(self) -> bool:
        """Whether this action terminates the process."""
        return self in (ActionKind.KILL_CPU, ActionKind.KILL_MEMORY)


@dataclass(slots=True, frozen=True)
class ActionDecision:
    """A classified action together with the sample that triggered it."""

    kind: ActionKind
    sample: ProcessSample


@dataclass(slots=True, frozen=True)
class ActionOutcome:
    """Result of carrying out an ActionDecision."""

    succeeded: bool
    diagnostic: str = ""
    vanished: bool = False  # the process was already gone; nothing to report
