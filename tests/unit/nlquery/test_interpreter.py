"""Tests for the end-to-end query interpreter."""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.nlquery.catalog import DEFAULT_FUNCTIONS
from src.nlquery.column_cache import STATUS_GROUPS, ColumnValueCache
from src.nlquery.executor import InMemoryExecutor
from src.nlquery.interpreter import NO_FUNCTION_MESSAGE, QueryInterpreter
from src.nlquery.models import (
    Classification,
    ClassificationErrorKind,
    FeedbackErrorType,
    RAGContext,
)
from src.nlquery.parsing import SizeTierCalculator
from src.nlquery.parsing.time_parser import FAR_FUTURE

ROWS = [
    {"Title": "Bay Bridge Retrofit", "State": "California", "RequestCategory": "Transportation",
     "Fee": "2000000", "ConstStartDate": "2024-10-15"},
    {"Title": "Fresno Clinic", "State": "California", "RequestCategory": "Healthcare",
     "Fee": "80000", "ConstStartDate": "2025-02-01"},
    {"Title": "Austin Campus", "State": "Texas", "RequestCategory": "Education",
     "Fee": "9000000", "ConstStartDate": "2024-11-30"},
]

COLUMN_MAP = {"state_code": "State", "category": "RequestCategory"}


def make_llm(*classifications: Classification, corrections: tuple[Classification, ...] = ()) -> MagicMock:
    llm = MagicMock()
    llm.classify = AsyncMock(side_effect=list(classifications))
    llm.reclassify_with_feedback = AsyncMock(side_effect=list(corrections))
    return llm


@pytest.fixture
def executor() -> InMemoryExecutor:
    return InMemoryExecutor(rows=list(ROWS), column_map=dict(COLUMN_MAP))


def make_interpreter(llm, executor, **kwargs) -> QueryInterpreter:
    return QueryInterpreter(llm, executor, today=lambda: date(2025, 6, 1), **kwargs)


class TestInterpret:
    """Classification, resolution and execution."""

    @pytest.mark.asyncio
    async def test_state_and_quarter(self, executor) -> None:
        llm = make_llm(
            Classification(
                "get_projects_by_combined_filters",
                {"state_code": "California", "time_reference": "Q4 2024"},
            )
        )
        interpreter = make_interpreter(llm, executor)

        result = await interpreter.interpret("Projects in California in Q4 2024")

        assert result.succeeded
        assert result.arguments == {
            "state_code": "California",
            "start_date": "2024-10-01",
            "end_date": "2024-12-31",
        }
        assert [r["Title"] for r in result.rows] == ["Bay Bridge Retrofit"]
        assert result.corrected is False
        assert executor.calls == [("get_projects_by_combined_filters", result.arguments)]
        llm.classify.assert_awaited_once_with(
            "Projects in California in Q4 2024", DEFAULT_FUNCTIONS, None
        )
        llm.reclassify_with_feedback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_context_passed_to_classifier(self, executor) -> None:
        context = RAGContext(functions=({"function_name": "get_projects_by_state"},), confidence=0.82)
        retriever = MagicMock()
        retriever.retrieve_context = AsyncMock(return_value=context)
        llm = make_llm(Classification("get_projects_by_state", {"state_code": "Texas"}))
        interpreter = make_interpreter(llm, executor, retriever=retriever, top_k=3)

        result = await interpreter.interpret("Texas projects")

        retriever.retrieve_context.assert_awaited_once_with("Texas projects", 3)
        assert llm.classify.call_args.args[2] is context
        assert result.to_dict()["context_confidence"] == 0.82
        assert result.to_dict()["row_count"] == 1

    @pytest.mark.asyncio
    async def test_no_results_self_corrects(self, executor) -> None:
        column_cache = MagicMock()
        column_cache.refresh = AsyncMock(return_value=True)
        column_cache.database_hints.return_value = {"category": ("Healthcare", "Education")}
        first = Classification(
            "get_projects_by_combined_filters",
            {"category": "Helthcare", "time_reference": "since 2025"},
        )
        second = Classification(
            "get_projects_by_combined_filters",
            {"category": "Healthcare", "time_reference": "since 2025"},
        )
        llm = make_llm(first, corrections=(second,))
        interpreter = make_interpreter(llm, executor, column_cache=column_cache)

        result = await interpreter.interpret("Helthcare projects since 2025")

        assert result.succeeded
        assert result.corrected is True
        assert result.attempts == (first, second)
        assert result.classification is second
        assert [r["Title"] for r in result.rows] == ["Fresno Clinic"]

        question, functions, feedback = llm.reclassify_with_feedback.call_args.args
        assert question == "Helthcare projects since 2025"
        assert feedback.error_type == FeedbackErrorType.NO_RESULTS
        assert feedback.previous_args == first.arguments
        assert feedback.database_hints == {"category": ("Healthcare", "Education")}
        column_cache.refresh.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_correction_budget_exhausted(self, executor) -> None:
        empty = Classification("get_projects_by_state", {"state_code": "Ohio"})
        llm = make_llm(empty, corrections=(Classification("get_projects_by_state", {"state_code": "Iowa"}),))
        interpreter = make_interpreter(llm, executor)

        result = await interpreter.interpret("Ohio projects")

        assert result.error == "Query returned 0 rows"
        assert len(result.attempts) == 2
        assert len(executor.calls) == 2

    @pytest.mark.asyncio
    async def test_executor_error_reported(self) -> None:
        executor = MagicMock()
        executor.execute = AsyncMock(side_effect=RuntimeError("relation \"POR\" does not exist"))
        executor.fetch = AsyncMock(return_value=[])
        llm = make_llm(Classification("count_projects", {}))
        interpreter = make_interpreter(llm, executor, max_corrections=0)

        result = await interpreter.interpret("How many projects?")

        assert result.succeeded is False
        assert "does not exist" in result.error

    @pytest.mark.asyncio
    async def test_failed_classification_stops(self, executor) -> None:
        llm = make_llm(
            Classification(
                error="rate_limit", error_kind=ClassificationErrorKind.RATE_LIMIT, retry_after=30
            )
        )
        interpreter = make_interpreter(llm, executor)

        result = await interpreter.interpret("anything")

        assert result.error == "rate_limit"
        assert executor.calls == []
        llm.reclassify_with_feedback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_function_selected(self, executor) -> None:
        llm = make_llm(Classification())
        interpreter = make_interpreter(llm, executor)

        result = await interpreter.interpret("What's the weather?")

        assert result.error == NO_FUNCTION_MESSAGE
        assert result.to_dict()["function_name"] == "none"


class TestResolveArguments:
    """Deterministic argument resolution."""

    @pytest.fixture
    def interpreter(self, executor) -> QueryInterpreter:
        return make_interpreter(make_llm(), executor, size_calculator=SizeTierCalculator())

    def test_size_tier_to_fee_bounds(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_combined_filters", {"size": "Large"}), "large projects"
        )
        assert arguments == {"min_fee": 10_000_000, "max_fee": 50_000_000}

    def test_open_ended_tier(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_combined_filters", {"size": "mega"}), "mega projects"
        )
        assert arguments == {"min_fee": 50_000_000}

    def test_limit_from_question(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_largest_projects", {}), "show the top 10 largest projects"
        )
        assert arguments == {"limit": 10}

    def test_explicit_dates_win(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification(
                "get_projects_by_date_range",
                {"time_reference": "2024", "start_date": "2024-03-01"},
            ),
            "projects in 2024",
        )
        assert arguments == {"start_date": "2024-03-01", "end_date": "2024-12-31"}

    def test_relative_reference_uses_today(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_date_range", {"time_reference": "this year"}),
            "projects this year",
        )
        assert arguments == {"start_date": "2025-01-01", "end_date": "2025-12-31"}

    def test_unparsed_reference_kept(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_date_range", {"time_reference": "during the olympics"}),
            "projects during the olympics",
        )
        assert arguments == {"time_reference": "during the olympics"}

    def test_huge_relative_reference_clamped(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_date_range", {"time_reference": "next 9999 years"}),
            "projects in the next 9999 years",
        )
        assert arguments == {"start_date": "2025-06-01", "end_date": FAR_FUTURE}

    def test_unknown_tier_kept(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_combined_filters", {"size": "colossal"}), "q"
        )
        assert arguments == {"size": "colossal"}


CATALOG_ROWS = [
    {"Title": "Valley Hospital", "StatusChoice": "Won", "Region": "West",
     "ProjectType": "Hospital (HOSP)", "Client": "Acme Health Systems"},
    {"Title": "Dubai Tower", "StatusChoice": "Lost", "Region": "MENA",
     "ProjectType": "High Rise", "Client": "Gulf Holdings"},
    {"Title": "Boston Lab", "StatusChoice": "Submitted", "Region": "NA - Northeast",
     "ProjectType": "Laboratory", "Client": "Acme Health Systems"},
]

CATALOG_COLUMN_MAP = {
    "status": "StatusChoice",
    "region": "Region",
    "project_type": "ProjectType",
    "client": "Client",
}


class TestColumnValueResolution:
    """Status groups, region aliases and stored spellings from the column cache."""

    @pytest.fixture
    def catalog_executor(self) -> InMemoryExecutor:
        return InMemoryExecutor(rows=list(CATALOG_ROWS), column_map=dict(CATALOG_COLUMN_MAP))

    @pytest.fixture
    async def interpreter(self, catalog_executor) -> QueryInterpreter:
        cache = ColumnValueCache(catalog_executor)
        await cache.refresh()
        return make_interpreter(make_llm(), catalog_executor, column_cache=cache)

    @pytest.mark.asyncio
    async def test_status_group_expanded(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_status", {"status": "open"}), "open projects"
        )
        assert arguments == {"status": list(STATUS_GROUPS["open"])}

    @pytest.mark.asyncio
    async def test_status_list_merged_without_duplicates(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_status", {"status": ["won", "closed"]}), "q"
        )
        statuses = arguments["status"]
        assert statuses[:3] == ["Won", "Awarded", "Accepted"]
        assert len(statuses) == len(set(statuses))
        assert "Completed" in statuses

    @pytest.mark.asyncio
    async def test_region_alias_single_value(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_combined_filters", {"region": "west coast"}), "q"
        )
        assert arguments == {"region": "West"}

    @pytest.mark.asyncio
    async def test_project_type_abbreviation(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_project_type", {"project_type": "hosp"}), "q"
        )
        assert arguments == {"project_type": "Hospital (HOSP)"}

    @pytest.mark.asyncio
    async def test_client_stored_spelling(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_client", {"client": "acme"}), "q"
        )
        assert arguments == {"client": "Acme Health Systems"}

    @pytest.mark.asyncio
    async def test_unknown_values_kept(self, interpreter) -> None:
        arguments = interpreter.resolve_arguments(
            Classification(
                "get_projects_by_combined_filters",
                {"project_type": "Stadium", "client": "Zenith"},
            ),
            "q",
        )
        assert arguments == {"project_type": "Stadium", "client": "Zenith"}

    def test_cache_not_loaded_leaves_arguments(self, catalog_executor) -> None:
        interpreter = make_interpreter(
            make_llm(), catalog_executor, column_cache=ColumnValueCache(catalog_executor)
        )
        arguments = interpreter.resolve_arguments(
            Classification("get_projects_by_status", {"status": "open"}), "open projects"
        )
        assert arguments == {"status": "open"}

    @pytest.mark.asyncio
    async def test_interpret_expands_region(self, catalog_executor) -> None:
        llm = make_llm(Classification("get_projects_by_combined_filters", {"region": "middle east"}))
        interpreter = make_interpreter(
            llm, catalog_executor, column_cache=ColumnValueCache(catalog_executor)
        )

        result = await interpreter.interpret("Projects in the middle east")

        assert result.succeeded
        assert result.arguments == {"region": "MENA"}
        assert [r["Title"] for r in result.rows] == ["Dubai Tower"]
