"""Tests for the distinct column value cache."""

from __future__ import annotations

import re
from typing import Any

import pytest

from src.nlquery.column_cache import COLUMNS, STATUS_GROUPS, ColumnValueCache

COLUMN_VALUES = {
    "Client": ["Acme Health Partners", "City of Austin"],
    "Company": ["Northwind Engineering"],
    "Region": ["West", "NA - Northeast", "MENA"],
    "State": ["California", "Texas"],
    "ProjectType": ["Hospitals", "Higher Education", "Bridges"],
    "RequestCategory": ["Healthcare", "Transportation"],
    "StatusChoice": ["Won", "Lost", "Submitted", "Qualified Lead"],
    "Department": ["Structural Engineering (SE)"],
}

SELECTED_COLUMN = re.compile(r'SELECT DISTINCT "(\w+)"')


class FakeClock:
    def __init__(self) -> None:
        self.now = 10_000.0

    def __call__(self) -> float:
        return self.now


class ColumnExecutor:
    """Answers distinct-value queries from a dict, optionally failing some columns."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.queries: list[str] = []

    async def execute(self, function_name, arguments):
        raise NotImplementedError

    async def fetch(self, sql: str) -> list[dict[str, Any]]:
        self.queries.append(sql)
        column = SELECTED_COLUMN.search(sql).group(1)
        if column in self.failing:
            raise RuntimeError(f"permission denied for column {column}")
        return [{"val": v} for v in COLUMN_VALUES.get(column, [])] + [{"val": None}]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def cache(clock) -> ColumnValueCache:
    cache = ColumnValueCache(ColumnExecutor(), table_name="Proposals", clock=clock)
    await cache.refresh()
    return cache


class TestRefresh:

    @pytest.mark.asyncio
    async def test_loads_every_column(self, clock) -> None:
        executor = ColumnExecutor()
        cache = ColumnValueCache(executor, table_name="Proposals", clock=clock)

        assert cache.is_ready is False
        assert await cache.refresh() is True

        assert len(executor.queries) == len(COLUMNS)
        assert all('FROM "Proposals"' in q for q in executor.queries)
        assert cache.get_column_values("State") == ("California", "Texas")
        assert cache.get_column_values("City") == ()
        assert cache.is_ready is True

    @pytest.mark.asyncio
    async def test_skips_until_interval_elapsed(self, clock) -> None:
        executor = ColumnExecutor()
        cache = ColumnValueCache(executor, refresh_interval=3600, clock=clock)
        await cache.refresh()

        clock.now += 3600
        assert await cache.refresh() is False

        clock.now += 1
        assert await cache.refresh() is True
        assert await cache.refresh(force=True) is True
        assert len(executor.queries) == 3 * len(COLUMNS)

    @pytest.mark.asyncio
    async def test_failed_column_keeps_previous_values(self, clock) -> None:
        executor = ColumnExecutor()
        cache = ColumnValueCache(executor, clock=clock)
        await cache.refresh()

        executor.failing = {"State"}
        await cache.refresh(force=True)

        assert cache.get_column_values("State") == ("California", "Texas")
        assert cache.stats()["columns"]["State"] == 2


class TestLookups:

    @pytest.mark.asyncio
    async def test_find_matching_column_priority(self, cache) -> None:
        assert cache.find_matching_column("acme") == ("Client", "Acme Health Partners")
        assert cache.find_matching_column("Texas") == ("State", "Texas")
        assert cache.find_matching_column("hospitals") == ("ProjectType", "Hospitals")
        assert cache.find_matching_column("SE") == ("Department", "Structural Engineering (SE)")
        assert cache.find_matching_column("zeppelin") is None
        assert cache.find_matching_column("  ") is None

    @pytest.mark.asyncio
    async def test_resolve_status(self, cache) -> None:
        assert cache.resolve_status("Open") == list(STATUS_GROUPS["open"])
        assert cache.resolve_status("qualified") == ["Qualified Lead"]
        assert cache.resolve_status("Dormant") == ["Dormant"]

    @pytest.mark.asyncio
    async def test_resolve_region(self, cache) -> None:
        assert cache.resolve_region("UAE") == ["MENA"]
        assert cache.resolve_region("east coast") == ["East", "NA - East", "NA - Northeast"]
        assert cache.resolve_region("northeast") == ["NA - Northeast", "Northeast"]
        assert cache.resolve_region("west") == ["West"]
        assert cache.resolve_region("Antarctica") == ["Antarctica"]

    @pytest.mark.asyncio
    async def test_resolve_project_type(self, cache) -> None:
        assert cache.resolve_project_type("bridges") == "Bridges"
        assert cache.resolve_project_type("education") == "Higher Education"
        assert cache.resolve_project_type("airports") is None

    @pytest.mark.asyncio
    async def test_database_hints(self, cache) -> None:
        hints = cache.database_hints()

        assert hints["status"] == ("Won", "Lost", "Submitted", "Qualified Lead")
        assert hints["category"] == ("Healthcare", "Transportation")
        assert hints["state"] == ("California", "Texas")
        assert hints["client"] == ("Acme Health Partners", "City of Austin")

    def test_database_hints_empty_before_refresh(self, clock) -> None:
        assert ColumnValueCache(ColumnExecutor(), clock=clock).database_hints() is None
