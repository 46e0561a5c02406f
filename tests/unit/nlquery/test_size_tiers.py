"""Tests for fee percentile caching and size tiers."""

from __future__ import annotations

from typing import Any

import pytest

from src.nlquery.parsing.size_tiers import (
    FALLBACK_THRESHOLDS,
    MIN_REAL_FEE,
    UNKNOWN_TIER,
    SizeTierCalculator,
)

PERCENTILE_ROW = {
    "p20": 35_000,
    "p40": 90_000,
    "p60": 250_000,
    "p80": 1_319_919,
    "min_fee": 10_500,
    "max_fee": 925_000_000,
    "total_projects": 4_210,
}


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class RecordingExecutor:
    """Executor stub that returns canned percentile rows."""

    def __init__(self, rows: list[dict[str, Any]] | None = None, error: Exception | None = None):
        self.rows = rows if rows is not None else [dict(PERCENTILE_ROW)]
        self.error = error
        self.queries: list[str] = []

    async def execute(self, function_name, arguments):
        raise NotImplementedError

    async def fetch(self, sql: str) -> list[dict[str, Any]]:
        self.queries.append(sql)
        if self.error:
            raise self.error
        return self.rows


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def calculator(clock) -> SizeTierCalculator:
    return SizeTierCalculator(ttl_seconds=3600, clock=clock)


class TestCalculatePercentiles:
    """Percentile query, caching and validation."""

    @pytest.mark.asyncio
    async def test_computes_and_caches(self, calculator) -> None:
        executor = RecordingExecutor()

        data = await calculator.calculate_percentiles(executor, table_name="Proposals")

        assert data is not None
        assert data.thresholds == (35_000, 90_000, 250_000, 1_319_919)
        assert data.total_projects == 4_210
        assert '"Proposals"' in executor.queries[0]
        assert str(MIN_REAL_FEE) in executor.queries[0]

        again = await calculator.calculate_percentiles(executor)
        assert again is data
        assert len(executor.queries) == 1

    @pytest.mark.asyncio
    async def test_force_refresh_requeries(self, calculator) -> None:
        executor = RecordingExecutor()
        await calculator.calculate_percentiles(executor)
        await calculator.calculate_percentiles(executor, force_refresh=True)
        assert len(executor.queries) == 2

    @pytest.mark.asyncio
    async def test_cache_expires_after_ttl(self, calculator, clock) -> None:
        executor = RecordingExecutor()
        await calculator.calculate_percentiles(executor)

        clock.now += 3600
        assert calculator.percentiles is None
        assert calculator.get_size_category(50_000) == UNKNOWN_TIER

        await calculator.calculate_percentiles(executor)
        assert len(executor.queries) == 2

    @pytest.mark.asyncio
    async def test_executor_error_returns_none(self, calculator) -> None:
        executor = RecordingExecutor(error=RuntimeError("connection reset"))
        assert await calculator.calculate_percentiles(executor) is None
        assert calculator.percentiles is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad", [None, "abc", float("nan"), float("inf")])
    async def test_non_finite_values_rejected(self, calculator, bad) -> None:
        row = dict(PERCENTILE_ROW, p60=bad)
        executor = RecordingExecutor(rows=[row])

        assert await calculator.calculate_percentiles(executor) is None
        assert calculator.thresholds() == FALLBACK_THRESHOLDS

    @pytest.mark.asyncio
    async def test_empty_result_returns_none(self, calculator) -> None:
        assert await calculator.calculate_percentiles(RecordingExecutor(rows=[])) is None


class TestSizeCategory:
    """Fee to tier mapping."""

    @pytest.mark.asyncio
    async def test_tiers_from_percentiles(self, calculator) -> None:
        await calculator.calculate_percentiles(RecordingExecutor())

        assert calculator.get_size_category(20_000) == "Micro"
        assert calculator.get_size_category(35_000) == "Small"
        assert calculator.get_size_category(100_000) == "Medium"
        assert calculator.get_size_category(500_000) == "Large"
        assert calculator.get_size_category(2_000_000) == "Mega"

    @pytest.mark.asyncio
    async def test_monotonic_in_fee(self, calculator) -> None:
        await calculator.calculate_percentiles(RecordingExecutor())
        order = ["Micro", "Small", "Medium", "Large", "Mega"]
        fees = [1, 10_000, 34_999, 35_000, 89_999, 250_000, 1_319_918, 1_319_919, 10**9]
        ranks = [order.index(calculator.get_size_category(f)) for f in fees]
        assert ranks == sorted(ranks)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fee", [None, 0, -5])
    async def test_unknown_for_missing_fee(self, calculator, fee) -> None:
        await calculator.calculate_percentiles(RecordingExecutor())
        assert calculator.get_size_category(fee) == UNKNOWN_TIER

    def test_unknown_without_percentiles(self, calculator) -> None:
        assert calculator.get_size_category(500_000) == UNKNOWN_TIER


class TestSqlCaseStatement:
    """CASE expression generation."""

    def test_fallback_thresholds(self, calculator) -> None:
        sql = calculator.get_sql_case_statement()

        assert "WHEN CAST(NULLIF(\"Fee\", '') AS NUMERIC) < 100000 THEN 'Micro'" in sql
        assert "< 50000000 THEN 'Large'" in sql
        assert "ELSE 'Mega'" in sql

    @pytest.mark.asyncio
    async def test_live_thresholds(self, calculator) -> None:
        await calculator.calculate_percentiles(RecordingExecutor())
        sql = calculator.get_sql_case_statement(column='"ProjectFee"')

        assert "CAST(NULLIF(\"ProjectFee\", '') AS NUMERIC) < 35000 THEN 'Micro'" in sql
        assert "< 1319919 THEN 'Large'" in sql


class TestTierBounds:
    """Tier name to fee bounds."""

    def test_fallback_bounds(self, calculator) -> None:
        assert calculator.get_tier_bounds("Micro") == (None, 100_000)
        assert calculator.get_tier_bounds("medium") == (1_000_000, 10_000_000)
        assert calculator.get_tier_bounds(" MEGA ") == (50_000_000, None)

    @pytest.mark.asyncio
    async def test_live_bounds(self, calculator) -> None:
        await calculator.calculate_percentiles(RecordingExecutor())
        assert calculator.get_tier_bounds("Large") == (250_000, 1_319_919)

    def test_unknown_tier(self, calculator) -> None:
        assert calculator.get_tier_bounds("enormous") is None
