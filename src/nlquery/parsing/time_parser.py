"""
Semantic Time Parser

Maps free-text time expressions ("before 2023", "next 3 months", "Q4 2024",
"between January and March 2024") to an ISO (start, end) pair relative to a
reference date fixed when the parser is created.

Phrases overlap ("next year" also looks like "next N units"), so matchers
run in a fixed priority order and the first one that returns a range wins.
"""

from __future__ import annotations

import calendar
import re
from collections.abc import Callable
from datetime import MINYEAR, date, timedelta
from typing import Final

from src.nlquery.models import TimeRange

FAR_PAST: Final = "2000-01-01"
FAR_FUTURE: Final = "2099-12-31"
FALLBACK_RELATIVE_DAYS: Final = 30

# Directional phrases around a bare year. A year that starts a full date
# (2024-03-01) is left for the date matcher.
_YEAR: Final = r"(20\d{2})\b(?![-/]\d)"
BEFORE_YEAR_PATTERN: Final = re.compile(r"\b(?:before|prior\s+to)\s+" + _YEAR)
UNTIL_YEAR_PATTERN: Final = re.compile(r"\b(?:until|through|up\s+to)\s+" + _YEAR)
AFTER_YEAR_PATTERN: Final = re.compile(r"\bafter\s+" + _YEAR)
SINCE_YEAR_PATTERN: Final = re.compile(r"\b(?:since|from)\s+" + _YEAR)

US_DATE_PATTERN: Final = re.compile(r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{4})\b")  # 03/15/2024
ISO_DATE_PATTERN: Final = re.compile(r"\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b")  # 2024-03-15
OPEN_END_MARKERS: Final = ("from ", "starting from", "after ", "since ")
OPEN_START_MARKERS: Final = (" to ", "until ", "before ", "ending ")

FUTURE_PATTERN: Final = re.compile(r"\b(?:next|coming|upcoming|future)\b")
# Whole words only: "recently" is a vague phrase, not a relative period
PAST_PATTERN: Final = re.compile(r"\b(?:last|past|previous|recent)\b")

# Checked in order; "months" is a longer horizon than "month"
UNIT_DEFAULT_DAYS: Final[tuple[tuple[re.Pattern[str], int], ...]] = (
    (re.compile(r"\bweeks?\b"), 7),
    (re.compile(r"\bmonth\b"), 30),
    (re.compile(r"\bmonths\b"), 180),
    (re.compile(r"\bquarters?\b"), 90),
    (re.compile(r"\byears?\b"), 365),
)

UNIT_DAYS: Final[dict[str, int]] = {
    "day": 1,
    "week": 7,
    "month": 30,
    "quarter": 90,
    "year": 365,
}

NUMERIC_TIMEFRAME_PATTERN: Final = re.compile(
    r"(\d+)\s*(days?|weeks?|months?|quarters?|years?)\b"
)

# (phrase, start offset, end offset) in days relative to today
VAGUE_PHRASES: Final[tuple[tuple[re.Pattern[str], int, int], ...]] = (
    (re.compile(r"\bsoon\b"), 0, 90),
    (re.compile(r"\bnear\s+future\b"), 0, 180),
    (re.compile(r"\bshort[\s-]term\b"), 0, 180),
    (re.compile(r"\bmedium[\s-]term\b"), 180, 730),
    (re.compile(r"\blong[\s-]term\b"), 730, 1825),
    (re.compile(r"\bimmediately\b"), 0, 30),
    (re.compile(r"\brecently\b"), -90, 0),
    (re.compile(r"\bshortly\b"), 0, 60),
    (re.compile(r"\blittle\s+while\b"), 0, 90),
)

QUARTER_PATTERN: Final = re.compile(r"\bq([1-4])\s*(?:of\s+)?(\d{4})\b")
ORDINAL_QUARTER_PATTERN: Final = re.compile(
    r"\b(first|second|third|fourth|1st|2nd|3rd|4th)\s+quarter\s+(?:of\s+)?(\d{4})\b"
)
ORDINAL_QUARTERS: Final[dict[str, int]] = {
    "first": 1,
    "1st": 1,
    "second": 2,
    "2nd": 2,
    "third": 3,
    "3rd": 3,
    "fourth": 4,
    "4th": 4,
}

YEAR_RANGE_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\bbetween\s+(20\d{2})\s+(?:and|to|through|thru)\s+(20\d{2})\b"),
    re.compile(r"\b(20\d{2})\s*(?:and|to|through|thru|-|–)\s*(20\d{2})\b"),
)
SINGLE_YEAR_PATTERN: Final = re.compile(r"\b(20\d{2})\b")

MONTH_RANGE_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\bbetween\s+([a-z]+)\s+and\s+([a-z]+)\s+(?:of\s+)?(\d{4})\b"),
    re.compile(r"\b(?:from\s+)?([a-z]+)\s+(?:to|through|thru|-|–)\s+([a-z]+)\s+(?:of\s+)?(\d{4})\b"),
)
MONTHS: Final[dict[str, int]] = {
    **{name.lower(): i for i, name in enumerate(calendar.month_name) if name},
    **{name.lower(): i for i, name in enumerate(calendar.month_abbr) if name},
    "sept": 9,
}

TENS_WORDS: Final[dict[str, int]] = {
    "twenty": 20,
    "thirty": 30,
    "forty": 40,
    "fifty": 50,
    "sixty": 60,
    "seventy": 70,
    "eighty": 80,
    "ninety": 90,
}
UNIT_WORDS: Final[dict[str, int]] = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
}
NUMBER_WORDS: Final[dict[str, int]] = {
    **UNIT_WORDS,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
    "thirteen": 13,
    "fourteen": 14,
    "fifteen": 15,
    "sixteen": 16,
    "seventeen": 17,
    "eighteen": 18,
    "nineteen": 19,
    **TENS_WORDS,
}
COMPOUND_NUMBER_PATTERN: Final = re.compile(
    r"\b(" + "|".join(TENS_WORDS) + r")[\s-](" + "|".join(UNIT_WORDS) + r")\b"
)
NUMBER_WORD_PATTERN: Final = re.compile(r"\b(" + "|".join(NUMBER_WORDS) + r")\b")

Matcher = Callable[[str], "TimeRange | None"]


def words_to_digits(text: str) -> str:
    """
    Replace English number words (up to ninety-nine) with digits.

    >>> words_to_digits("next three months")
    'next 3 months'
    >>> words_to_digits("last twenty-five years")
    'last 25 years'
    """
    text = COMPOUND_NUMBER_PATTERN.sub(
        lambda m: str(TENS_WORDS[m.group(1)] + UNIT_WORDS[m.group(2)]), text
    )
    return NUMBER_WORD_PATTERN.sub(lambda m: str(NUMBER_WORDS[m.group(1)]), text)


class SemanticTimeParser:
    """
    Resolves time expressions to (start, end) ISO date strings.

    Either side may be "" for an open-ended boundary. start <= end is not
    enforced.

    Example:
        >>> parser = SemanticTimeParser(today=date(2026, 1, 20))
        >>> parser.parse("before 2023")
        ('', '2022-12-31')
        >>> parser.parse("next 3 months")
        ('2026-01-20', '2026-04-20')
        >>> parser.parse("Q4 2024")
        ('2024-10-01', '2024-12-31')
    """

    def __init__(self, today: date | None = None):
        """
        Initialize the parser.

        Args:
            today: Reference date for relative expressions. Defaults to the
                   current date at construction.
        """
        self.today = today or date.today()

    @property
    def matchers(self) -> tuple[Matcher, ...]:
        """Matchers in priority order."""
        return (
            self.match_directional,
            self.match_specific_date,
            self.match_calendar_keyword,
            self.match_relative_period,
            self.match_vague_phrase,
            self.match_quarter,
            self.match_month_range,
            self.match_year,
            self.match_numeric_timeframe,
        )

    def parse(self, text: str | None) -> TimeRange | None:
        """
        Parse a time expression.

        Args:
            text: Free-text time reference

        Returns:
            (start, end) tuple, or None when no category matches
        """
        if not text:
            return None

        normalized = text.lower().strip()
        if not normalized:
            return None

        for matcher in self.matchers:
            result = matcher(normalized)
            if result is not None:
                return result
        return None

    # ------------------------------------------------------------------
    # Matchers. Each expects lower-cased, stripped text.
    # ------------------------------------------------------------------

    def match_directional(self, text: str) -> TimeRange | None:
        """before/until/after/since a bare year."""
        if self._find_year_range(text) is not None:
            return None

        match = BEFORE_YEAR_PATTERN.search(text)
        if match:
            return ("", f"{int(match.group(1)) - 1}-12-31")

        match = UNTIL_YEAR_PATTERN.search(text)
        if match:
            return ("", f"{match.group(1)}-12-31")

        match = AFTER_YEAR_PATTERN.search(text)
        if match:
            return (f"{int(match.group(1)) + 1}-01-01", "")

        match = SINCE_YEAR_PATTERN.search(text)
        if match:
            return (f"{match.group(1)}-01-01", "")

        return None

    def match_specific_date(self, text: str) -> TimeRange | None:
        """A full US or ISO date, optionally opened by surrounding words."""
        found = self._find_date(text)
        if found is None:
            return None

        open_end = any(marker in text for marker in OPEN_END_MARKERS)
        open_start = any(marker in text for marker in OPEN_START_MARKERS)

        if open_end and not open_start:
            return (found, FAR_FUTURE)
        if open_start and not open_end:
            return (FAR_PAST, found)
        return (found, found)

    def match_calendar_keyword(self, text: str) -> TimeRange | None:
        """next/last/this year and this quarter."""
        year = self.today.year

        if "next year" in text:
            return self._year_range(year + 1)
        if any(k in text for k in ("previous year", "last year", "prior year")):
            return self._year_range(year - 1)
        if any(k in text for k in ("this year", "current year")):
            return self._year_range(year)
        if "this quarter" in text:
            return self._quarter_range((self.today.month - 1) // 3 + 1, year)

        return None

    def match_relative_period(self, text: str) -> TimeRange | None:
        """next/coming/upcoming/future or last/past/previous/recent periods."""
        if FUTURE_PATTERN.search(text):
            forward = True
        elif PAST_PATTERN.search(text):
            forward = False
        else:
            return None

        timeframe = self._extract_timeframe(text)
        if timeframe is not None:
            amount, unit = timeframe
            return self._offset_range(amount, unit, forward)

        for pattern, days in UNIT_DEFAULT_DAYS:
            if pattern.search(text):
                return self._offset_range(days, "day", forward)

        # "near future" and "recently" take their vague-phrase horizon
        # rather than the 30-day fallback below
        if self.match_vague_phrase(text) is not None:
            return None

        return self._offset_range(FALLBACK_RELATIVE_DAYS, "day", forward)

    def match_vague_phrase(self, text: str) -> TimeRange | None:
        """soon, long term, recently..."""
        for pattern, start_offset, end_offset in VAGUE_PHRASES:
            if pattern.search(text):
                return (
                    (self.today + timedelta(days=start_offset)).isoformat(),
                    (self.today + timedelta(days=end_offset)).isoformat(),
                )
        return None

    def match_quarter(self, text: str) -> TimeRange | None:
        """Q3 2024, third quarter 2024."""
        match = QUARTER_PATTERN.search(text)
        if match and int(match.group(2)) >= MINYEAR:
            return self._quarter_range(int(match.group(1)), int(match.group(2)))

        match = ORDINAL_QUARTER_PATTERN.search(text)
        if match and int(match.group(2)) >= MINYEAR:
            return self._quarter_range(ORDINAL_QUARTERS[match.group(1)], int(match.group(2)))

        return None

    def match_month_range(self, text: str) -> TimeRange | None:
        """between January and March 2024."""
        for pattern in MONTH_RANGE_PATTERNS:
            for match in pattern.finditer(text):
                start_month = MONTHS.get(match.group(1))
                end_month = MONTHS.get(match.group(2))
                year = int(match.group(3))
                if start_month is None or end_month is None or year < MINYEAR:
                    continue
                last_day = self._days_in_month(year, end_month)
                return (
                    date(year, start_month, 1).isoformat(),
                    date(year, end_month, last_day).isoformat(),
                )
        return None

    def match_year(self, text: str) -> TimeRange | None:
        """2024, between 2020 and 2025, 2020-2025."""
        years = self._find_year_range(text)
        if years is not None:
            return (f"{years[0]}-01-01", f"{years[1]}-12-31")

        match = SINGLE_YEAR_PATTERN.search(text)
        if match:
            return self._year_range(int(match.group(1)))

        return None

    def match_numeric_timeframe(self, text: str) -> TimeRange | None:
        """<number> <unit>, direction taken from surrounding keywords."""
        timeframe = self._extract_timeframe(text)
        if timeframe is None:
            return None

        amount, unit = timeframe
        forward = bool(FUTURE_PATTERN.search(text)) or not PAST_PATTERN.search(text)
        return self._offset_range(amount, unit, forward)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _offset_range(self, amount: int, unit: str, forward: bool) -> TimeRange:
        """
        Range between today and today shifted by amount units.

        A shift past the calendar's limits ("next 9999 years") is clamped to
        FAR_FUTURE or FAR_PAST.
        """
        try:
            if unit == "year":
                shifted = self._add_years(self.today, amount if forward else -amount)
            else:
                delta = timedelta(days=amount * UNIT_DAYS[unit])
                shifted = self.today + delta if forward else self.today - delta
        except (OverflowError, ValueError):
            shifted = date.fromisoformat(FAR_FUTURE if forward else FAR_PAST)

        if forward:
            return (self.today.isoformat(), shifted.isoformat())
        return (shifted.isoformat(), self.today.isoformat())

    @staticmethod
    def _extract_timeframe(text: str) -> tuple[int, str] | None:
        match = NUMERIC_TIMEFRAME_PATTERN.search(words_to_digits(text))
        if not match:
            return None
        return int(match.group(1)), match.group(2).rstrip("s")

    @staticmethod
    def _find_date(text: str) -> str | None:
        for match in US_DATE_PATTERN.finditer(text):
            month, day, year = (int(g) for g in match.groups())
            if SemanticTimeParser._valid_date_parts(year, month, day):
                return f"{year:04d}-{month:02d}-{day:02d}"

        for match in ISO_DATE_PATTERN.finditer(text):
            year, month, day = (int(g) for g in match.groups())
            if SemanticTimeParser._valid_date_parts(year, month, day):
                return f"{year:04d}-{month:02d}-{day:02d}"

        return None

    @staticmethod
    def _find_year_range(text: str) -> tuple[int, int] | None:
        for pattern in YEAR_RANGE_PATTERNS:
            match = pattern.search(text)
            if match:
                return int(match.group(1)), int(match.group(2))
        return None

    @staticmethod
    def _valid_date_parts(year: int, month: int, day: int) -> bool:
        return 1 <= month <= 12 and 1 <= day <= 31 and 2000 <= year <= 2100

    @staticmethod
    def _year_range(year: int) -> TimeRange:
        return (f"{year}-01-01", f"{year}-12-31")

    @staticmethod
    def _quarter_range(quarter: int, year: int) -> TimeRange:
        start_month = (quarter - 1) * 3 + 1
        end_month = start_month + 2
        last_day = SemanticTimeParser._days_in_month(year, end_month)
        return (
            date(year, start_month, 1).isoformat(),
            date(year, end_month, last_day).isoformat(),
        )

    @staticmethod
    def _add_years(d: date, years: int) -> date:
        """Shift by calendar years; Feb 29 lands on Feb 28 in common years."""
        new_year = d.year + years
        if d.month == 2 and d.day == 29 and not calendar.isleap(new_year):
            return date(new_year, 2, 28)
        return date(new_year, d.month, d.day)

    @staticmethod
    def _days_in_month(year: int, month: int) -> int:
        return calendar.monthrange(year, month)[1]


def parse_time_reference(text: str | None, today: date | None = None) -> TimeRange | None:
    """Parse a time expression with a throwaway parser anchored at today."""
    return SemanticTimeParser(today=today).parse(text)
