"""
Data Executor Protocol

The engine never runs SQL itself. Structured filters and the few SQL
statements it builds (fee percentiles, distinct column values) are handed to
an executor supplied by the caller.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any, Final, Protocol, runtime_checkable

from src.nlquery.models import FeedbackErrorType

# Statements built by ColumnValueCache and SizeTierCalculator
DISTINCT_VALUES_QUERY: Final = re.compile(r'SELECT DISTINCT "(\w+)" AS val')
PERCENTILE_QUERY: Final = re.compile(r'PERCENTILE_CONT.*TRY_CAST\("\w+" AS NUMERIC\) > ([\d.]+)', re.DOTALL)


@dataclass(frozen=True)
class ExecutionResult:
    """Rows returned for a classification, or the reason there are none."""

    rows: tuple[dict[str, Any], ...] = ()
    error: str | None = None
    sql: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and len(self.rows) > 0

    @property
    def failure_type(self) -> FeedbackErrorType | None:
        """How the execution failed, None on success."""
        if self.error is not None:
            return FeedbackErrorType.SQL_ERROR
        if not self.rows:
            return FeedbackErrorType.NO_RESULTS
        return None


@runtime_checkable
class DataExecutor(Protocol):
    """Runs structured filters and raw queries against the project dataset."""

    async def execute(self, function_name: str, arguments: dict[str, Any]) -> ExecutionResult:
        """
        Run a query function with extracted arguments.

        Args:
            function_name: Selected query function
            arguments: Extracted filter values

        Returns:
            ExecutionResult with rows or an error message
        """
        ...

    async def fetch(self, sql: str) -> list[dict[str, Any]]:
        """
        Run a raw SQL statement and return rows as mappings.

        Raises:
            Exception: Any database error
        """
        ...


@dataclass
class InMemoryExecutor:
    """
    Executor over a list of row mappings.

    Arguments are matched case-insensitively against row columns using a
    column map; a list argument matches any of its values. `fetch` answers
    the two statements the engine itself builds (distinct column values and
    fee percentiles) from the same rows. Used by the CLI demo and tests.
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    column_map: dict[str, str] = field(default_factory=dict)
    date_column: str = "ConstStartDate"
    fee_column: str = "Fee"
    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)

    async def execute(self, function_name: str, arguments: dict[str, Any]) -> ExecutionResult:
        self.calls.append((function_name, dict(arguments)))
        matched = [row for row in self.rows if self._matches(row, arguments)]
        limit = arguments.get("limit")
        if isinstance(limit, int) and limit > 0:
            matched = matched[:limit]
        return ExecutionResult(rows=tuple(matched))

    async def fetch(self, sql: str) -> list[dict[str, Any]]:
        """
        Answer a distinct-values or fee-percentile statement from the rows.

        Raises:
            ValueError: Any other statement
        """
        match = DISTINCT_VALUES_QUERY.search(sql)
        if match:
            return self._distinct_values(match.group(1))

        match = PERCENTILE_QUERY.search(sql)
        if match:
            return self._fee_percentiles(float(match.group(1)))

        raise ValueError(f"InMemoryExecutor cannot run statement: {sql.strip()[:60]!r}")

    def _distinct_values(self, column: str) -> list[dict[str, Any]]:
        seen: dict[str, None] = {}
        for row in self.rows:
            value = row.get(column)
            if value not in (None, ""):
                seen.setdefault(str(value), None)
        return [{"val": value} for value in seen]

    def _fee_percentiles(self, min_fee: float) -> list[dict[str, Any]]:
        fees = sorted(
            fee for fee in (_as_number(row.get(self.fee_column)) for row in self.rows)
            if fee is not None and fee > min_fee
        )
        if not fees:
            return []
        return [
            {
                "p20": _percentile_cont(fees, 0.20),
                "p40": _percentile_cont(fees, 0.40),
                "p60": _percentile_cont(fees, 0.60),
                "p80": _percentile_cont(fees, 0.80),
                "min_fee": fees[0],
                "max_fee": fees[-1],
                "total_projects": len(fees),
            }
        ]

    def _matches(self, row: dict[str, Any], arguments: dict[str, Any]) -> bool:
        for name, value in arguments.items():
            if value in (None, "", []) or name == "limit":
                continue
            if name == "start_date":
                if str(row.get(self.date_column, "")) < str(value):
                    return False
            elif name == "end_date":
                if str(row.get(self.date_column, "")) > str(value):
                    return False
            elif name == "min_fee":
                if float(row.get(self.fee_column) or 0) < float(value):
                    return False
            elif name == "max_fee":
                if float(row.get(self.fee_column) or 0) >= float(value):
                    return False
            elif name in self.column_map:
                cell = str(row.get(self.column_map[name], "")).lower()
                candidates = value if isinstance(value, list) else [value]
                if cell not in {str(v).lower() for v in candidates}:
                    return False
        return True


def _as_number(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _percentile_cont(values: list[float], fraction: float) -> float:
    """Linear-interpolated percentile of sorted values, as SQL PERCENTILE_CONT."""
    position = fraction * (len(values) - 1)
    lower = math.floor(position)
    upper = min(lower + 1, len(values) - 1)
    return values[lower] + (values[upper] - values[lower]) * (position - lower)
