"""Exemption rules: which processes the governor never touches."""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from procgov.models import SUPERUSER, ProcessSample


@dataclass(slots=True, frozen=True)
class ExemptionPolicy:
    """Users and command patterns excluded from governance."""

    users: frozenset[str] = frozenset()
    patterns: tuple[re.Pattern[str], ...] = field(default_factory=tuple)


def compile_patterns(patterns: Iterable[str]) -> tuple[re.Pattern[str], ...]:
    """
    Compile exemption patterns, each bounded to whole words.

    Raises:
        re.error: If a pattern is not a valid regular expression.
    """
    return tuple(re.compile(rf"\b(?:{pattern})\b") for pattern in patterns)


def is_exempt(sample: ProcessSample, policy: ExemptionPolicy) -> bool:
    """Return True if the process must be left alone."""
    if sample.owner == SUPERUSER or sample.owner in policy.users:
        return True
    return any(pattern.search(sample.command_line) for pattern in policy.patterns)
