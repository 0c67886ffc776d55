"""Glob matching of startup entries, packages and task paths against ordered tables.

Patterns use a single wildcard, ``*``, which matches any run of characters
(including none). Every other character is literal and comparison is
case-insensitive. A table is an ordered sequence of ``PatternEntry`` objects and
the first entry that matches wins, so more specific patterns must be listed
before broader vendor-wide ones.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Optional, Pattern, Sequence


class Bucket(Enum):
    """Classification bucket an item (or a pattern entry) belongs to."""

    PROTECTED = "protected"
    CATEGORY_A = "category_a"
    CATEGORY_B = "category_b"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PatternEntry:
    pattern: str
    label: str
    category: Bucket = Bucket.UNKNOWN

    def matches(self, candidate_id: str) -> bool:
        return matches(candidate_id, self.pattern)


PatternTable = Sequence[PatternEntry]


@lru_cache(maxsize=1024)
def _compile(pattern: str) -> Pattern[str]:
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile(".*".join(parts), re.IGNORECASE | re.DOTALL)


def matches(candidate_id: str, pattern: str) -> bool:
    """Return True if the whole of ``candidate_id`` matches the glob ``pattern``."""
    if candidate_id is None:
        return False
    return _compile(pattern).fullmatch(candidate_id) is not None


def match(candidate_id: str, table: PatternTable) -> Optional[PatternEntry]:
    """Return the first entry of ``table`` whose glob matches ``candidate_id``.

    Args:
        candidate_id: Startup value name, package name or task path to test.
        table: Ordered pattern entries. Order is significant.

    Returns:
        The earliest matching ``PatternEntry``, or None when nothing matches
        (including when the table is empty).
    """
    for entry in table:
        if matches(candidate_id, entry.pattern):
            return entry
    return None


def strip_wildcards(pattern: str) -> str:
    return pattern.replace("*", "")


__all__ = [
    "Bucket",
    "PatternEntry",
    "PatternTable",
    "match",
    "matches",
    "strip_wildcards",
]
