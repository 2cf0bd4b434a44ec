"""procgov command-line entry point."""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any

from procgov.config import ConfigError, GovernorConfig, load_config
from procgov.daemon import daemonize, remove_pid_file, write_pid_file
from procgov.governor import Governor, install_signal_handlers
from procgov.logs import setup_logging
from procgov.snapshot import ProcessSnapshotSource

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="procgov",
        description="Renice or kill processes that overuse CPU or memory, and mail their owners.",
    )
    parser.add_argument("-c", "--config", type=Path, help="YAML configuration file")
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    parser.add_argument("--pretend", action="store_true", help="log decisions without acting or mailing")
    parser.add_argument("--debug", action="store_true", help="log at debug level")
    parser.add_argument("--log-file", type=Path, help="override the configured log file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--daemonize", dest="daemonize", action="store_true", default=None,
                      help="detach from the terminal")
    mode.add_argument("--foreground", dest="daemonize", action="store_false",
                      help="stay attached to the terminal")
    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.once:
        overrides["loop"] = False
    if args.pretend:
        overrides["pretend"] = True
    if args.debug:
        overrides["debug"] = True
    if args.log_file is not None:
        overrides["log_file"] = args.log_file.resolve()
    if args.daemonize is not None:
        overrides["daemonize"] = args.daemonize
    return overrides


def main(argv: list[str] | None = None) -> int:
    """Entry point for the procgov daemon."""
    args = build_parser().parse_args(argv)
    config_path = args.config.resolve() if args.config else None
    overrides = _overrides(args)

    def load() -> GovernorConfig:
        config = load_config(config_path) if config_path else GovernorConfig()
        return replace(config, **overrides)

    try:
        config = load()
        setup_logging(
            config.log_file,
            debug=config.debug,
            console=not config.daemonize,
            pretend=config.pretend,
        )
    except ConfigError as exc:
        print(f"procgov: {exc}", file=sys.stderr)
        return 1

    if config.daemonize:
        daemonize()
        try:
            write_pid_file(config.pid_file)
        except OSError as exc:
            logger.error("cannot write pid file %s: %s", config.pid_file, exc)
            return 1

    governor = Governor(config, ProcessSnapshotSource(), reload=load)
    install_signal_handlers(governor)
    try:
        governor.run()
    finally:
        if config.daemonize:
            remove_pid_file(config.pid_file)
    return 0


if __name__ == "__main__":
    sys.exit(main())
