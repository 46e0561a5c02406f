"""
Number, Range and Limit Parsers

Extracts magnitudes ("5 million", "200k"), numeric ranges ("between 1m and
5m") and result limits ("top 10") from question text.
"""

from __future__ import annotations

import re
from typing import Final

_NUM: Final = r"(\d+(?:\.\d+)?)"

# Tried in order, first match wins
NUMBER_PATTERNS: Final[tuple[tuple[re.Pattern[str], float], ...]] = (
    (re.compile(_NUM + r"\s*million\b", re.IGNORECASE), 1_000_000),
    (re.compile(_NUM + r"m\b", re.IGNORECASE), 1_000_000),
    (re.compile(_NUM + r"\s*thousand\b", re.IGNORECASE), 1_000),
    (re.compile(_NUM + r"k\b", re.IGNORECASE), 1_000),
    (re.compile(_NUM), 1),
)

_AMOUNT: Final = r"\$?(\d+(?:\.\d+)?\s*(?:million|thousand|m|k)?)"
RANGE_PATTERN: Final = re.compile(
    r"between\s+" + _AMOUNT + r"\s+and\s+" + _AMOUNT + r"(?![\w.])", re.IGNORECASE
)

LIMIT_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\btop\s+(\d+)", re.IGNORECASE),
    re.compile(r"\bfirst\s+(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)\s+largest\b", re.IGNORECASE),
    re.compile(r"(\d+)\s+biggest\b", re.IGNORECASE),
    re.compile(r"\blimit\s+(\d+)", re.IGNORECASE),
)


class NumberCalculator:
    """
    Stateless extractors for quantities in question text.

    Example:
        >>> NumberCalculator.parse_number("over 5 million")
        5000000.0
        >>> NumberCalculator.parse_limit("top 10 largest projects")
        10
    """

    @staticmethod
    def parse_number(text: str | None) -> float | None:
        """First magnitude in the text, with million/thousand suffixes applied."""
        if not text:
            return None

        for pattern, multiplier in NUMBER_PATTERNS:
            match = pattern.search(text)
            if match:
                return float(match.group(1)) * multiplier
        return None

    @staticmethod
    def parse_range(text: str | None) -> tuple[float, float] | None:
        """Parse "between X and Y" into a numeric pair."""
        if not text:
            return None

        match = RANGE_PATTERN.search(text)
        if not match:
            return None

        low = NumberCalculator.parse_number(match.group(1))
        high = NumberCalculator.parse_number(match.group(2))
        if low is None or high is None:
            return None
        return (low, high)

    @staticmethod
    def parse_limit(text: str | None) -> int | None:
        """Requested result count ("top 10", "5 biggest", "limit 20")."""
        if not text:
            return None

        for pattern in LIMIT_PATTERNS:
            match = pattern.search(text)
            if match:
                return int(match.group(1))
        return None
