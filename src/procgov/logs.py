"""Logging setup for procgov."""

import logging
from pathlib import Path

from rich.logging import RichHandler

from procgov.config import ConfigError

LOGGER_NAME = "procgov"
FILE_FORMAT = "%(asctime)s %(levelname)-7s [%(process)d] %(runmode)s%(message)s"
CONSOLE_FORMAT = "%(runmode)s%(message)s"


class PretendFilter(logging.Filter):
    """Tags every record so simulated runs are recognisable in the log."""

    def __init__(self, pretend: bool = False) -> None:
        super().__init__()
        self.set_pretend(pretend)

    def set_pretend(self, pretend: bool) -> None:
        self.runmode = "[PRETEND] " if pretend else ""

    def filter(self, record: logging.LogRecord) -> bool:
        record.runmode = self.runmode
        return True


def set_pretend(pretend: bool) -> None:
    """Switch the run mode tag on the handlers installed by setup_logging."""
    for handler in logging.getLogger(LOGGER_NAME).handlers:
        for log_filter in handler.filters:
            if isinstance(log_filter, PretendFilter):
                log_filter.set_pretend(pretend)


def setup_logging(
    log_file: str | Path | None,
    debug: bool = False,
    console: bool = True,
    pretend: bool = False,
) -> logging.Logger:
    """
    Configure the ``procgov`` logger.

    Args:
        log_file: File to append records to, or None for console only.
        debug: Log at DEBUG instead of INFO.
        console: Also log to the terminal (foreground runs).
        pretend: Mark every record as simulated.

    Raises:
        ConfigError: If the log file cannot be opened for writing.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False
    run_filter = PretendFilter(pretend)

    if log_file is not None:
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"cannot open log file {log_file}: {exc}") from exc
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        file_handler.addFilter(run_filter)
        logger.addHandler(file_handler)

    if console:
        console_handler = RichHandler(show_path=debug, rich_tracebacks=True)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        console_handler.addFilter(run_filter)
        logger.addHandler(console_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger
