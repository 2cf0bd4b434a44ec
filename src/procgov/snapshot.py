"""Process and system inspection for procgov."""

import logging
import pwd
import time

import psutil

from procgov.models import LoadSnapshot, ProcessEntry, ProcessSample

logger = logging.getLogger(__name__)

_MIB = 1024 * 1024


def resolve_username(name_or_uid: str | int) -> str:
    """
    Resolve a username or numeric uid to the canonical username.

    psutil reports the bare uid when a name lookup fails (for example with
    long names on some systems), so numeric values are mapped back through
    the passwd database. Unknown uids are returned unchanged as strings.
    """
    raw = str(name_or_uid)
    if not raw.isdigit():
        return raw
    try:
        return pwd.getpwuid(int(raw)).pw_name
    except KeyError:
        return raw


def format_elapsed(seconds: int) -> str:
    """Format seconds as ``[[dd-]hh:]mm:ss`` the way ps(1) prints etime."""
    seconds = max(0, int(seconds))
    days, rem = divmod(seconds, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, secs = divmod(rem, 60)
    if days:
        return f"{days}-{hours:02d}:{minutes:02d}:{secs:02d}"
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class ProcessSnapshotSource:
    """
    Reads the host load and the process table using psutil.

    Two operations are offered: ``processes()`` for the full table (cheap,
    instantaneous cpu), and ``detail(pid)`` for the authoritative cumulative
    reading of a single process. Table rows psutil cannot read count as
    idle; detail() treats processes that disappear, deny access or are
    zombies as absent.
    """

    # Attributes read for the table
    TABLE_ATTRS = ["pid", "cpu_percent", "memory_percent"]

    def __init__(self) -> None:
        """Initialize the source and prime psutil's per-process cpu counters."""
        # First cpu_percent call per process returns 0.0; prime them now so
        # the first real cycle sees usage since startup.
        for _ in psutil.process_iter(attrs=["cpu_percent"]):
            pass

    def load(self) -> LoadSnapshot:
        """Read the 1-minute load average and available memory."""
        load_avg = psutil.getloadavg()
        mem = psutil.virtual_memory()
        return LoadSnapshot(
            load_average=load_avg[0],
            free_memory_mb=int(mem.available // _MIB),
        )

    def processes(self) -> list[ProcessEntry]:
        """
        Collect the full process table.

        Only the fields the pre-filter compares are read. psutil fills in
        None for attributes it cannot access.
        """
        entries: list[ProcessEntry] = []

        for proc in psutil.process_iter(attrs=self.TABLE_ATTRS):
            info = proc.info
            entries.append(
                ProcessEntry(
                    pid=info["pid"],
                    cpu_percent=info.get("cpu_percent") or 0.0,
                    memory_percent=info.get("memory_percent") or 0.0,
                )
            )

        return entries

    def detail(self, pid: int) -> ProcessSample | None:
        """
        Re-read a single process for an authoritative sample.

        Returns:
            The sample, or None if the process vanished, is a zombie, or
            cannot be inspected.
        """
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                if proc.status() == psutil.STATUS_ZOMBIE:
                    return None
                create_time = proc.create_time()
                cpu_times = proc.cpu_times()
                cmdline = proc.cmdline()
                sample = ProcessSample(
                    pid=pid,
                    owner=resolve_username(proc.username()),
                    cpu_percent=_cumulative_cpu(
                        cpu_times.user + cpu_times.system, time.time() - create_time
                    ),
                    memory_percent=proc.memory_percent(),
                    elapsed_seconds=max(0, int(time.time() - create_time)),
                    nice=proc.nice(),
                    command_line=" ".join(cmdline) if cmdline else proc.name(),
                    create_time=create_time,
                )
        except (psutil.NoSuchProcess, psutil.ZombieProcess):
            logger.debug("pid %d vanished before detailed lookup", pid)
            return None
        except psutil.AccessDenied:
            logger.debug("access denied reading pid %d", pid)
            return None
        return sample


def _cumulative_cpu(cpu_seconds: float, elapsed: float) -> float:
    """CPU usage averaged over the process lifetime, in percent."""
    if elapsed <= 0:
        return 0.0
    return cpu_seconds / elapsed * 100.0
