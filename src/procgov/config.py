"""Configuration loading for procgov."""

import math
import re
import shlex
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from procgov.exemptions import ExemptionPolicy, compile_patterns
from procgov.policy import Threshold, ThresholdPolicy


class ConfigError(Exception):
    """Raised for configuration or logging setup that prevents startup."""


DEFAULT_THRESHOLDS = ThresholdPolicy(
    renice_cpu=Threshold(threshold=30.0, duration=30),
    kill_cpu=Threshold(threshold=90.0, duration=3600),
    kill_memory=Threshold(threshold=50.0, duration=0),
)


@dataclass(slots=True, frozen=True)
class GovernorConfig:
    """Everything the governor needs for one policy generation."""

    load_trigger: float = 3.0
    free_memory_trigger_mb: int = 2000
    thresholds: ThresholdPolicy = DEFAULT_THRESHOLDS
    exemptions: ExemptionPolicy = field(default_factory=ExemptionPolicy)
    loop_interval: float = 60.0
    pretend: bool = False
    debug: bool = False
    daemonize: bool = False
    loop: bool = True
    log_file: Path = Path("/var/log/procgov.log")
    pid_file: Path = Path("/run/procgov.pid")
    mail_from: str | None = None
    mail_bcc: tuple[str, ...] = ()
    mail_domain: str | None = None
    email_lookup_command: tuple[str, ...] | None = None
    sendmail_command: tuple[str, ...] = ("/usr/sbin/sendmail", "-t", "-oi")
    smtp_host: str | None = None


_TIERS = ("renice_cpu", "kill_cpu", "kill_memory")
_KNOWN_KEYS = (
    {f.name for f in fields(GovernorConfig)} - {"thresholds", "exemptions"}
) | set(_TIERS) | {"exempt_users", "exempt_processes"}


def _number(data: dict[str, Any], key: str, default: float, kind: type = float) -> Any:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{key} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigError(f"{key} must be finite, got {value!r}")
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {value!r}")
    if kind is int and value != int(value):
        raise ConfigError(f"{key} must be a whole number, got {value!r}")
    return kind(value)


def _flag(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def _optional_string(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"{key} must be a string, got {value!r}")
    return value or None


def _string_list(data: dict[str, Any], key: str) -> tuple[str, ...]:
    value = data.get(key) or []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"{key} must be a list of strings")
    return tuple(value)


def _command(data: dict[str, Any], key: str) -> tuple[str, ...] | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return tuple(shlex.split(value))
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return tuple(value)
    raise ConfigError(f"{key} must be a command string or list")


def _threshold(data: dict[str, Any], key: str, default: Threshold) -> Threshold:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, dict) or set(value) - {"threshold", "duration"}:
        raise ConfigError(f"{key} must be a mapping with threshold and duration")
    return Threshold(
        threshold=_number(value, "threshold", default.threshold),
        duration=_number(value, "duration", default.duration, int),
    )


def parse_config(data: dict[str, Any]) -> GovernorConfig:
    """
    Validate a raw configuration mapping.

    Raises:
        ConfigError: On unknown keys, wrong types, negative thresholds,
            a non-positive loop interval or invalid exemption patterns.
    """
    if not isinstance(data, dict):
        raise ConfigError("configuration must be a mapping")
    unknown = set(data) - _KNOWN_KEYS
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(sorted(str(key) for key in unknown))}")

    defaults = GovernorConfig()

    thresholds = ThresholdPolicy(
        **{tier: _threshold(data, tier, getattr(DEFAULT_THRESHOLDS, tier)) for tier in _TIERS}
    )

    patterns = _string_list(data, "exempt_processes")
    try:
        compiled = compile_patterns(patterns)
    except re.error as exc:
        raise ConfigError(f"invalid exempt_processes pattern: {exc}") from exc

    loop_interval = _number(data, "loop_interval", defaults.loop_interval)
    if loop_interval <= 0:
        raise ConfigError("loop_interval must be positive")

    sendmail = _command(data, "sendmail_command") or defaults.sendmail_command

    return GovernorConfig(
        load_trigger=_number(data, "load_trigger", defaults.load_trigger),
        free_memory_trigger_mb=_number(data, "free_memory_trigger_mb", defaults.free_memory_trigger_mb, int),
        thresholds=thresholds,
        exemptions=ExemptionPolicy(
            users=frozenset(_string_list(data, "exempt_users")),
            patterns=compiled,
        ),
        loop_interval=loop_interval,
        pretend=_flag(data, "pretend", defaults.pretend),
        debug=_flag(data, "debug", defaults.debug),
        daemonize=_flag(data, "daemonize", defaults.daemonize),
        loop=_flag(data, "loop", defaults.loop),
        log_file=Path(_optional_string(data, "log_file") or defaults.log_file),
        pid_file=Path(_optional_string(data, "pid_file") or defaults.pid_file),
        mail_from=_optional_string(data, "mail_from"),
        mail_bcc=_string_list(data, "mail_bcc"),
        mail_domain=_optional_string(data, "mail_domain"),
        email_lookup_command=_command(data, "email_lookup_command"),
        sendmail_command=sendmail,
        smtp_host=_optional_string(data, "smtp_host"),
    )


def load_config(path: str | Path) -> GovernorConfig:
    """
    Read and validate a YAML configuration file.

    Raises:
        ConfigError: If the file cannot be read, is not valid YAML, or
            fails validation.
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigError(f"cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {path}: {exc}") from exc

    return parse_config(data or {})
