"""
Size-Tier Calculator

Buckets project fees into five ordered tiers (Micro < Small < Medium <
Large < Mega) using fee percentiles computed from the data, with a static
threshold table when live percentiles are unavailable.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable
from typing import Any, Final

from src.nlquery.executor import DataExecutor
from src.nlquery.models import PercentileData

logger = logging.getLogger(__name__)

TIERS: Final[tuple[str, ...]] = ("Micro", "Small", "Medium", "Large", "Mega")
UNKNOWN_TIER: Final = "unknown"

# Upper bounds for Micro..Large when percentiles are unavailable
FALLBACK_THRESHOLDS: Final[tuple[float, float, float, float]] = (
    100_000,
    1_000_000,
    10_000_000,
    50_000_000,
)

# Fees at or below this are placeholders, not real engagements
MIN_REAL_FEE: Final = 10_000

DEFAULT_TTL_SECONDS: Final = 24 * 60 * 60

PERCENTILE_SQL: Final = """
SELECT TOP 1
  PERCENTILE_CONT(0.20) WITHIN GROUP (ORDER BY numeric_fee) OVER () AS p20,
  PERCENTILE_CONT(0.40) WITHIN GROUP (ORDER BY numeric_fee) OVER () AS p40,
  PERCENTILE_CONT(0.60) WITHIN GROUP (ORDER BY numeric_fee) OVER () AS p60,
  PERCENTILE_CONT(0.80) WITHIN GROUP (ORDER BY numeric_fee) OVER () AS p80,
  MIN(numeric_fee) OVER () AS min_fee,
  MAX(numeric_fee) OVER () AS max_fee,
  COUNT(*) OVER () AS total_projects
FROM (
  SELECT CAST(NULLIF("Fee", '') AS NUMERIC) AS numeric_fee
  FROM "{table}"
  WHERE "Fee" IS NOT NULL
    AND "Fee" != ''
    AND TRY_CAST("Fee" AS NUMERIC) > {min_fee}
) fee_data
"""


def _to_float(value: Any) -> float:
    """Coerce a driver value to float, NaN when it is not numeric."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


class SizeTierCalculator:
    """
    Computes and caches fee percentiles and classifies fees into tiers.

    The cache is owned by the instance; share one instance per process.

    Example:
        calculator = SizeTierCalculator()
        await calculator.calculate_percentiles(executor)
        calculator.get_size_category(2_500_000)  # "Medium"
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._percentiles: PercentileData | None = None

    @property
    def percentiles(self) -> PercentileData | None:
        """Cached percentiles if present, valid and within TTL."""
        p = self._percentiles
        if p is None or not p.is_valid():
            return None
        if self._clock() - p.calculated_at >= self._ttl_seconds:
            return None
        return p

    async def calculate_percentiles(
        self,
        executor: DataExecutor,
        force_refresh: bool = False,
        table_name: str = "POR",
    ) -> PercentileData | None:
        """
        Compute fee percentiles through the Data Executor.

        Args:
            executor: Runs the percentile SQL
            force_refresh: Ignore a fresh cached value
            table_name: Table holding the "Fee" column

        Returns:
            PercentileData, or None when the query fails or yields
            non-numeric values
        """
        cached = self.percentiles
        if cached is not None and not force_refresh:
            logger.debug(f"Using cached fee percentiles from {cached.calculated_at:.0f}")
            return cached

        sql = PERCENTILE_SQL.format(table=table_name, min_fee=MIN_REAL_FEE)
        logger.info(f"Calculating fee percentiles from table {table_name}")

        try:
            rows = await executor.fetch(sql)
        except Exception as e:
            logger.error(f"Fee percentile query failed: {e}")
            return None

        if not rows:
            logger.warning("Fee percentile query returned no rows")
            return None

        row = rows[0]
        values = {
            "p20": _to_float(row.get("p20")),
            "p40": _to_float(row.get("p40")),
            "p60": _to_float(row.get("p60")),
            "p80": _to_float(row.get("p80")),
            "min": _to_float(row.get("min_fee")),
            "max": _to_float(row.get("max_fee")),
            "total_projects": _to_float(row.get("total_projects")),
        }
        if not all(math.isfinite(v) for v in values.values()):
            logger.error(f"Rejected non-numeric fee percentiles: {values}")
            return None

        data = PercentileData(
            p20=values["p20"],
            p40=values["p40"],
            p60=values["p60"],
            p80=values["p80"],
            min=values["min"],
            max=values["max"],
            total_projects=int(values["total_projects"]),
            calculated_at=self._clock(),
        )
        self._percentiles = data
        logger.info(
            f"Fee percentiles: p20={data.p20:,.0f} p40={data.p40:,.0f} "
            f"p60={data.p60:,.0f} p80={data.p80:,.0f} over {data.total_projects} projects"
        )
        return data

    def thresholds(self) -> tuple[float, float, float, float]:
        """Live percentile thresholds, else the fallback table."""
        p = self.percentiles
        if p is None:
            return FALLBACK_THRESHOLDS
        return p.thresholds

    def get_sql_case_statement(self, column: str = '"Fee"') -> str:
        """
        Tier-assignment CASE expression for the Data Executor.

        Args:
            column: Fee column expression

        Returns:
            SQL CASE expression yielding the tier name
        """
        if self.percentiles is None:
            logger.warning("Using fallback size thresholds (percentiles not available)")

        fee = f"CAST(NULLIF({column}, '') AS NUMERIC)"
        p20, p40, p60, p80 = self.thresholds()
        return (
            "CASE\n"
            f"  WHEN {fee} < {p20:.15g} THEN 'Micro'\n"
            f"  WHEN {fee} < {p40:.15g} THEN 'Small'\n"
            f"  WHEN {fee} < {p60:.15g} THEN 'Medium'\n"
            f"  WHEN {fee} < {p80:.15g} THEN 'Large'\n"
            "  ELSE 'Mega'\n"
            "END"
        )

    def get_size_category(self, fee: float | None) -> str:
        """Tier name for a fee, "unknown" without percentiles or a positive fee."""
        p = self.percentiles
        if p is None or fee is None or fee <= 0:
            return UNKNOWN_TIER

        for tier, upper in zip(TIERS, p.thresholds):
            if fee < upper:
                return tier
        return TIERS[-1]

    def get_tier_bounds(self, tier: str) -> tuple[float | None, float | None] | None:
        """
        Fee bounds [low, high) for a tier name.

        Uses live percentiles when available, else the fallback table. The
        lowest tier has no lower bound and the highest no upper bound.
        """
        normalized = tier.strip().capitalize()
        if normalized not in TIERS:
            return None

        index = TIERS.index(normalized)
        edges: list[float | None] = [None, *self.thresholds(), None]
        return (edges[index], edges[index + 1])
