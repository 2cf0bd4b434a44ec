"""Subject and body text for notification mails."""

import socket
from collections.abc import Callable
from dataclasses import dataclass

from procgov.models import ActionKind, ProcessSample
from procgov.snapshot import format_elapsed

COMMAND_WIDTH = 80


@dataclass(slots=True, frozen=True)
class JobInfo:
    """Everything a template may mention about the offending process."""

    pid: int
    user: str
    cpu_percent: float
    memory_percent: float
    elapsed: str
    command: str
    hostname: str

    @classmethod
    def from_sample(cls, sample: ProcessSample, hostname: str | None = None) -> "JobInfo":
        """Build job info from a sample, truncating the command line."""
        command = sample.command_line
        if len(command) > COMMAND_WIDTH:
            command = command[: COMMAND_WIDTH - 3] + "..."
        return cls(
            pid=sample.pid,
            user=sample.owner,
            cpu_percent=sample.cpu_percent,
            memory_percent=sample.memory_percent,
            elapsed=format_elapsed(sample.elapsed_seconds),
            command=command,
            hostname=hostname or socket.gethostname(),
        )


def _job_table(job: JobInfo) -> str:
    return (
        f"  PID      {job.pid}\n"
        f"  USER     {job.user}\n"
        f"  %CPU     {job.cpu_percent:.1f}\n"
        f"  %MEM     {job.memory_percent:.1f}\n"
        f"  ELAPSED  {job.elapsed}\n"
        f"  COMMAND  {job.command}\n"
    )


def subject_kill_memory(job: JobInfo) -> str:
    return f"[{job.hostname}] Process {job.pid} killed for excessive memory use"


def body_kill_memory(job: JobInfo) -> str:
    return (
        f"Hello {job.user},\n\n"
        f"Your process on {job.hostname} was using {job.memory_percent:.1f}% of the\n"
        "machine's memory and has been terminated to protect the other users\n"
        "of the host from running out of memory.\n\n"
        f"{_job_table(job)}\n"
        "Please run memory-intensive jobs on a machine sized for them, or\n"
        "contact the administrators if you need an exemption.\n"
    )


def subject_kill_cpu(job: JobInfo) -> str:
    return f"[{job.hostname}] Process {job.pid} killed for excessive CPU use"


def body_kill_cpu(job: JobInfo) -> str:
    return (
        f"Hello {job.user},\n\n"
        f"Your process on {job.hostname} averaged {job.cpu_percent:.1f}% CPU over\n"
        f"{job.elapsed} and has been terminated.\n\n"
        f"{_job_table(job)}\n"
        "Long-running, CPU-heavy work belongs on the batch systems. Contact\n"
        "the administrators if you believe this was a mistake.\n"
    )


def subject_renice_cpu(job: JobInfo) -> str:
    return f"[{job.hostname}] Process {job.pid} lowered to minimum priority"


def body_renice_cpu(job: JobInfo) -> str:
    return (
        f"Hello {job.user},\n\n"
        f"Your process on {job.hostname} averaged {job.cpu_percent:.1f}% CPU over\n"
        f"{job.elapsed}. Its scheduling priority has been lowered so that it\n"
        "yields to interactive work. It has not been stopped.\n\n"
        f"{_job_table(job)}\n"
        "If it keeps using this much CPU it may be terminated.\n"
    )


Renderer = Callable[[JobInfo], str]

# One (subject, body) pair per action that produces a mail.
TEMPLATES: dict[ActionKind, tuple[Renderer, Renderer]] = {
    ActionKind.KILL_MEMORY: (subject_kill_memory, body_kill_memory),
    ActionKind.KILL_CPU: (subject_kill_cpu, body_kill_cpu),
    ActionKind.RENICE: (subject_renice_cpu, body_renice_cpu),
}
