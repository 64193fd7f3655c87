"""
Severity flags for LogVault records.

The flag set and its rank order are defined once, here, and consumed by
input validation, the storage-side ``log_flag`` type and the deletion
policy.

Invariants:
    - Ranks are fixed: log=0, debug=1, info=2, warn=3, error=4, trace=5
    - Anything outside the canonical set ranks INVALID_RANK (-1)
    - Records whose flag ranks >= DELETE_RANK_LIMIT can never be deleted

How to change safely:
    - Append new flags with a new rank, never renumber existing ones
    - The rank is a deletion-eligibility order, not a conventional
      severity order; trace outranks error on purpose
    - Adding a flag requires a migration of the storage-side type
"""

from __future__ import annotations

from enum import Enum

INVALID_RANK = -1
DELETE_RANK_LIMIT = 4


class Severity(Enum):
    """Canonical severity flags, declared in rank order."""

    LOG = "log"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    TRACE = "trace"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def deletable(self) -> bool:
        """Whether records carrying this flag may be deleted."""
        return self.rank < DELETE_RANK_LIMIT

    @classmethod
    def values(cls) -> tuple[str, ...]:
        """Canonical flag names in rank order."""
        return tuple(s.value for s in cls)


_RANKS: dict[Severity, int] = {s: i for i, s in enumerate(Severity)}

DEFAULT_SEVERITY = Severity.INFO


def normalize(raw: str | None) -> str:
    """Trim whitespace and lower-case a free-form flag string."""
    if raw is None:
        return ""
    return raw.strip().lower()


def parse_severity(raw: str | None) -> Severity | None:
    """Normalize ``raw`` and return the matching flag, or None if not canonical."""
    try:
        return Severity(normalize(raw))
    except ValueError:
        return None


def get_rank(flag: Severity | str | None) -> int:
    """Rank of a flag; unrecognized values rank INVALID_RANK.

    Args:
        flag: A Severity or a flag string (normalized before lookup)

    Returns:
        Integer rank in 0..5, or -1
    """
    if isinstance(flag, Severity):
        return flag.rank
    severity = parse_severity(flag)
    if severity is None:
        return INVALID_RANK
    return severity.rank
