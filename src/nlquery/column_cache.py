"""
Column Value Cache

Distinct values of the searchable dataset columns, fetched through the Data
Executor and refreshed hourly. Supplies the valid-value hints used by
self-correction and resolves status groups and region aliases to the values
actually stored.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Final

from src.nlquery.executor import DataExecutor

logger = logging.getLogger(__name__)

COLUMNS: Final[tuple[str, ...]] = (
    "Client",
    "Company",
    "PointOfContact",
    "ProjectType",
    "Division",
    "Department",
    "RequestCategory",
    "Region",
    "State",
    "StatusChoice",
    "City",
    "ServiceType",
)

# Checked in this order by find_matching_column
COLUMN_PRIORITY: Final[tuple[str, ...]] = (
    "Client",
    "Company",
    "Region",
    "State",
    "ProjectType",
    "Division",
    "Department",
    "RequestCategory",
)

STATUS_GROUPS: Final[dict[str, tuple[str, ...]]] = {
    "open": (
        "Won", "Lead", "Qualified Lead", "Submitted", "In Progress",
        "Pending", "In Review", "Under Consideration", "Active",
    ),
    "won": ("Won", "Awarded", "Accepted"),
    "lost": ("Lost", "No Go", "Declined", "Rejected", "Closed - Lost"),
    "closed": ("Won", "Awarded", "Lost", "No Go", "Declined", "Closed", "Completed"),
    "pending": ("Pending", "In Review", "Under Consideration", "Submitted", "Lead", "Qualified Lead"),
    "active": ("Active", "In Progress", "Open", "Submitted", "Pending", "Lead", "Qualified Lead", "Won"),
}

REGION_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "uae": ("MENA",),
    "united arab emirates": ("MENA",),
    "middle east": ("MENA",),
    "gulf": ("MENA",),
    "west coast": ("West",),
    "east coast": ("East", "NA - East", "NA - Northeast"),
    "northeast": ("NA - Northeast", "Northeast"),
    "midwest": ("Central", "Midwest"),
    "pacific": ("West",),
    "europe": ("Europe",),
    "asia": ("Central Asia", "Southeast Asia", "Asia"),
}

# Hint key -> column supplying its values
HINT_COLUMNS: Final[dict[str, str]] = {
    "status": "StatusChoice",
    "category": "RequestCategory",
    "project_type": "ProjectType",
    "client": "Client",
    "state": "State",
}

WORD_SPLIT = re.compile(r"[\s/\-(),]+")
ABBREVIATION = re.compile(r"\(([^)]+)\)")


@dataclass
class ColumnEntry:
    """Cached values of one column plus a lowercase search index."""

    values: tuple[str, ...]
    search_terms: dict[str, str] = field(default_factory=dict)
    refreshed_at: float = 0.0

    @classmethod
    def build(cls, values: list[str], refreshed_at: float) -> ColumnEntry:
        terms: dict[str, str] = {}
        for value in values:
            lowered = value.lower()
            terms[lowered] = value
            for word in WORD_SPLIT.split(lowered):
                if len(word) > 2:
                    terms.setdefault(word, value)
            abbreviation = ABBREVIATION.search(value)
            if abbreviation:
                terms[abbreviation.group(1).lower()] = value
        return cls(values=tuple(values), search_terms=terms, refreshed_at=refreshed_at)


class ColumnValueCache:
    """
    In-memory cache of distinct column values.

    Owned by the caller; one instance per dataset.
    """

    def __init__(
        self,
        executor: DataExecutor,
        table_name: str = "POR",
        refresh_interval: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ):
        self._executor = executor
        self._table_name = table_name
        self._refresh_interval = refresh_interval
        self._clock = clock
        self._entries: dict[str, ColumnEntry] = {}
        self._refreshed_at: float | None = None

    @property
    def is_ready(self) -> bool:
        return self._refreshed_at is not None

    def needs_refresh(self) -> bool:
        if self._refreshed_at is None:
            return True
        return self._clock() - self._refreshed_at > self._refresh_interval

    async def refresh(self, force: bool = False) -> bool:
        """
        Reload distinct values for every known column.

        A column whose query fails keeps its previous values.

        Returns:
            True if a refresh ran
        """
        if not force and not self.needs_refresh():
            return False

        now = self._clock()
        results = await asyncio.gather(
            *(self._load_column(column) for column in COLUMNS),
            return_exceptions=True,
        )
        for column, result in zip(COLUMNS, results):
            if isinstance(result, BaseException):
                logger.warning(f"Could not load distinct values for {column}: {result}")
                continue
            self._entries[column] = ColumnEntry.build(result, now)
            logger.debug(f"{column}: {len(result)} distinct values")

        self._refreshed_at = now
        logger.info(f"Column value cache refreshed ({len(self._entries)}/{len(COLUMNS)} columns)")
        return True

    async def _load_column(self, column: str) -> list[str]:
        sql = (
            f'SELECT DISTINCT "{column}" AS val FROM "{self._table_name}" '
            f"WHERE \"{column}\" IS NOT NULL AND \"{column}\" != ''"
        )
        rows = await self._executor.fetch(sql)
        return [str(row["val"]) for row in rows if row.get("val")]

    def get_column_values(self, column: str) -> tuple[str, ...]:
        entry = self._entries.get(column)
        return entry.values if entry else ()

    def find_matching_column(self, term: str) -> tuple[str, str] | None:
        """
        Find the column holding a search term.

        Exact term matches win within a column, then substring matches in
        either direction. Columns are checked in priority order.

        Returns:
            (column, stored value) or None
        """
        needle = term.lower().strip()
        if not needle:
            return None

        for column in COLUMN_PRIORITY:
            entry = self._entries.get(column)
            if entry is None:
                continue
            if needle in entry.search_terms:
                return column, entry.search_terms[needle]
            for cached, value in entry.search_terms.items():
                if needle in cached or cached in needle:
                    return column, value
        return None

    def resolve_status(self, term: str) -> list[str]:
        """Expand a status word ("open", "won") into stored status values."""
        needle = term.lower().strip()
        if needle in STATUS_GROUPS:
            return list(STATUS_GROUPS[needle])

        entry = self._entries.get("StatusChoice")
        if entry:
            for cached, value in entry.search_terms.items():
                if needle in cached:
                    return [value]
        return [term]

    def resolve_region(self, term: str) -> list[str]:
        """Expand a region alias ("west coast", "uae") into stored region values."""
        needle = term.lower().strip()
        if needle in REGION_ALIASES:
            return list(REGION_ALIASES[needle])

        entry = self._entries.get("Region")
        if entry:
            for cached, value in entry.search_terms.items():
                if needle in cached or cached in needle:
                    return [value]
        return [term]

    def resolve_project_type(self, term: str) -> str | None:
        needle = term.lower().strip()
        entry = self._entries.get("ProjectType")
        if not entry or not needle:
            return None
        if needle in entry.search_terms:
            return entry.search_terms[needle]
        for cached, value in entry.search_terms.items():
            if needle in cached or cached in needle:
                return value
        return None

    def database_hints(self) -> dict[str, tuple[str, ...]] | None:
        """Valid values per hint field for self-correction, None when empty."""
        hints = {
            key: values
            for key, column in HINT_COLUMNS.items()
            if (values := self.get_column_values(column))
        }
        return hints or None

    def stats(self) -> dict[str, Any]:
        return {
            "ready": self.is_ready,
            "columns": {name: len(entry.values) for name, entry in self._entries.items()},
        }
