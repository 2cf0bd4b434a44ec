"""Threshold policy and process classification."""

from dataclasses import dataclass

from procgov.models import LOWEST_PRIORITY, ActionDecision, ActionKind, ProcessSample


@dataclass(slots=True, frozen=True)
class Threshold:
    """A usage percentage that must be exceeded for longer than a duration."""

    threshold: float
    duration: int  # seconds; compared strictly greater-than

    def exceeded(self, usage: float, elapsed: int) -> bool:
        """Check whether usage and elapsed time are both over the limit."""
        return usage > self.threshold and elapsed > self.duration


@dataclass(slots=True, frozen=True)
class ThresholdPolicy:
    """The three escalation tiers. Memory has no renice tier."""

    renice_cpu: Threshold
    kill_cpu: Threshold
    kill_memory: Threshold


def classify(sample: ProcessSample, policy: ThresholdPolicy) -> ActionDecision:
    """
    Decide what to do with a process.

    The first matching tier wins, in order kill-for-memory, kill-for-cpu,
    renice-for-cpu. Processes already at the lowest priority are not
    reniced again.
    """
    elapsed = sample.elapsed_seconds

    if policy.kill_memory.exceeded(sample.memory_percent, elapsed):
        kind = ActionKind.KILL_MEMORY
    elif policy.kill_cpu.exceeded(sample.cpu_percent, elapsed):
        kind = ActionKind.KILL_CPU
    elif policy.renice_cpu.exceeded(sample.cpu_percent, elapsed) and sample.nice != LOWEST_PRIORITY:
        kind = ActionKind.RENICE
    else:
        kind = ActionKind.NONE

    return ActionDecision(kind=kind, sample=sample)


def prefilter_floor(policy: ThresholdPolicy) -> float:
    """Lowest threshold of any tier; entries below it on both cpu and memory are skipped."""
    return min(
        policy.renice_cpu.threshold,
        policy.kill_cpu.threshold,
        policy.kill_memory.threshold,
    )
