"""Detaching from the terminal and pid file handling."""

import os
import sys
from pathlib import Path


def daemonize() -> None:
    """Detach from the controlling terminal with the usual double fork."""
    if os.fork() > 0:
        os._exit(0)
    os.setsid()
    if os.fork() > 0:
        os._exit(0)

    os.chdir("/")
    os.umask(0o022)

    sys.stdout.flush()
    sys.stderr.flush()
    with open(os.devnull, "rb") as devnull_in, open(os.devnull, "ab") as devnull_out:
        os.dup2(devnull_in.fileno(), sys.stdin.fileno())
        os.dup2(devnull_out.fileno(), sys.stdout.fileno())
        os.dup2(devnull_out.fileno(), sys.stderr.fileno())


def write_pid_file(path: Path, pid: int | None = None) -> None:
    """Record the daemon's pid so service scripts can signal it."""
    path.write_text(f"{os.getpid() if pid is None else pid}\n", encoding="ascii")


def remove_pid_file(path: Path) -> None:
    """Remove the pid file if it still names this process."""
    try:
        if path.read_text(encoding="ascii").strip() == str(os.getpid()):
            path.unlink()
    except OSError:
        pass
