"""
Query Interpreter

End-to-end flow for one question:

1. Retrieve context and warm the percentile/column caches concurrently
2. Classify the question (through the concurrency gate)
3. Resolve time references, size tiers and limits deterministically
4. Execute through the Data Executor
5. On zero rows or an execution error, self-correct and execute again
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol

from src.common.telemetry import trace_span
from src.nlquery.catalog import DEFAULT_FUNCTIONS
from src.nlquery.column_cache import ColumnValueCache
from src.nlquery.config import NLQueryConfig
from src.nlquery.correction import build_feedback
from src.nlquery.executor import DataExecutor, ExecutionResult
from src.nlquery.llm import DualCredentialLLMClient, create_llm_client
from src.nlquery.models import Classification, FunctionSpec, RAGContext
from src.nlquery.parsing import NumberCalculator, SemanticTimeParser, SizeTierCalculator

logger = logging.getLogger(__name__)

NO_FUNCTION_MESSAGE = "No query function matches the question"

CLIENT_COLUMNS = ("Client", "Company")


class ContextRetriever(Protocol):
    """Anything that can supply retrieval context for a question."""

    async def retrieve_context(self, question: str, top_k: int = 5) -> RAGContext: ...


@dataclass(frozen=True)
class InterpretationResult:
    """Outcome of interpreting and executing one question."""

    question: str
    classification: Classification
    attempts: tuple[Classification, ...] = ()
    arguments: dict[str, Any] = field(default_factory=dict)
    rows: tuple[dict[str, Any], ...] = ()
    error: str | None = None
    context: RAGContext | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def corrected(self) -> bool:
        return len(self.attempts) > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "function_name": self.classification.function_name,
            "arguments": dict(self.arguments),
            "attempts": [a.to_dict() for a in self.attempts],
            "row_count": len(self.rows),
            "error": self.error,
            "context_confidence": self.context.confidence if self.context else 0.0,
        }


class QueryInterpreter:
    """
    Turns questions into executed queries.

    Usage:
        interpreter = QueryInterpreter(llm, executor, retriever=store)
        result = await interpreter.interpret("Projects in California in Q4 2024")
    """

    def __init__(
        self,
        llm: DualCredentialLLMClient,
        executor: DataExecutor,
        functions: Sequence[FunctionSpec] | None = None,
        retriever: ContextRetriever | None = None,
        size_calculator: SizeTierCalculator | None = None,
        column_cache: ColumnValueCache | None = None,
        today: Callable[[], date] = date.today,
        max_corrections: int = 1,
        top_k: int = 5,
        fee_table_name: str = "POR",
    ):
        """
        Initialize the interpreter.

        Args:
            llm: Classification client
            executor: Runs selected functions and percentile SQL
            functions: Available query functions (defaults to the built-in catalog)
            retriever: Optional context source
            size_calculator: Fee tier calculator (created if omitted)
            column_cache: Optional cache supplying valid values for correction
            today: Reference date used for relative time expressions
            max_corrections: Self-correction rounds after a failed execution
            top_k: Documents retrieved per question
            fee_table_name: Table used for fee percentiles
        """
        self._llm = llm
        self._executor = executor
        self._functions = tuple(functions) if functions is not None else DEFAULT_FUNCTIONS
        self._retriever = retriever
        self._sizes = size_calculator or SizeTierCalculator()
        self._columns = column_cache
        self._today = today
        self._max_corrections = max_corrections
        self._top_k = top_k
        self._fee_table_name = fee_table_name

    @property
    def functions(self) -> tuple[FunctionSpec, ...]:
        return self._functions

    async def interpret(self, question: str) -> InterpretationResult:
        """
        Classify, execute and if needed self-correct a question.

        Never raises for LLM, retrieval or execution failures; they are
        reported in the result's `error`.
        """
        with trace_span("interpreter.interpret", {"question.length": len(question)}) as span:
            context, _ = await asyncio.gather(self._retrieve(question), self._warm_up())

            classification = await self._llm.classify(question, self._functions, context)
            attempts = [classification]

            corrections = 0
            while True:
                if classification.failed or classification.is_none:
                    error = classification.error or NO_FUNCTION_MESSAGE
                    logger.info(f"Stopping interpretation: {error}")
                    return self._result(question, attempts, {}, (), error, context)

                arguments = self.resolve_arguments(classification, question)
                result = await self._execute(classification.function_name, arguments)

                if result.succeeded:
                    span.set_attribute("interpreter.attempts", len(attempts))
                    logger.info(
                        f"{classification.function_name} returned {len(result.rows)} rows "
                        f"after {len(attempts)} attempt(s)"
                    )
                    return self._result(question, attempts, arguments, result.rows, None, context)

                if corrections >= self._max_corrections:
                    error = result.error or "Query returned 0 rows"
                    return self._result(question, attempts, arguments, (), error, context)

                hints = self._columns.database_hints() if self._columns else None
                feedback = build_feedback(classification, result, hints)
                if feedback is None:
                    return self._result(question, attempts, arguments, result.rows, None, context)

                classification = await self._llm.reclassify_with_feedback(
                    question, self._functions, feedback
                )
                attempts.append(classification)
                corrections += 1

    def resolve_arguments(self, classification: Classification, question: str) -> dict[str, Any]:
        """
        Replace semantic arguments with concrete filter values.

        - `time_reference` becomes `start_date`/`end_date` when it parses
        - `size` becomes `min_fee`/`max_fee` from the tier bounds
        - `limit` is taken from the question ("top 10") when missing
        - with a loaded column cache, status groups and region aliases expand
          to stored values, and project types and clients map to the stored
          spelling
        """
        arguments = dict(classification.arguments)

        if self._columns is not None and self._columns.is_ready:
            self._resolve_column_values(arguments)

        reference = arguments.get("time_reference")
        if isinstance(reference, str) and reference.strip():
            parsed = SemanticTimeParser(today=self._today()).parse(reference)
            if parsed is None:
                logger.info(f"Time reference {reference!r} not understood, passing through")
            else:
                start, end = parsed
                arguments.pop("time_reference")
                if start:
                    arguments.setdefault("start_date", start)
                if end:
                    arguments.setdefault("end_date", end)

        size = arguments.get("size")
        if isinstance(size, str):
            bounds = self._sizes.get_tier_bounds(size)
            if bounds is not None:
                low, high = bounds
                arguments.pop("size")
                if low is not None:
                    arguments.setdefault("min_fee", low)
                if high is not None:
                    arguments.setdefault("max_fee", high)

        if "limit" not in arguments:
            limit = NumberCalculator.parse_limit(question)
            if limit is not None:
                arguments["limit"] = limit

        return arguments

    def _resolve_column_values(self, arguments: dict[str, Any]) -> None:
        columns = self._columns

        for name, resolve in (("status", columns.resolve_status), ("region", columns.resolve_region)):
            value = arguments.get(name)
            if isinstance(value, (str, list)) and value:
                resolved = _expand_terms(value, resolve)
                if resolved != value:
                    logger.debug(f"Resolved {name}={value!r} to {resolved!r}")
                arguments[name] = resolved

        project_type = arguments.get("project_type")
        if isinstance(project_type, str):
            stored = columns.resolve_project_type(project_type)
            if stored is not None:
                arguments["project_type"] = stored

        client = arguments.get("client")
        if isinstance(client, str):
            match = columns.find_matching_column(client)
            if match is not None and match[0] in CLIENT_COLUMNS:
                arguments["client"] = match[1]

    async def _retrieve(self, question: str) -> RAGContext | None:
        if self._retriever is None:
            return None
        return await self._retriever.retrieve_context(question, self._top_k)

    async def _warm_up(self) -> None:
        tasks = [self._sizes.calculate_percentiles(self._executor, table_name=self._fee_table_name)]
        if self._columns is not None:
            tasks.append(self._columns.refresh())
        await asyncio.gather(*tasks)

    async def _execute(self, function_name: str, arguments: dict[str, Any]) -> ExecutionResult:
        try:
            return await self._executor.execute(function_name, arguments)
        except Exception as e:
            logger.warning(f"Execution of {function_name} failed: {e}")
            return ExecutionResult(error=str(e))

    def _result(
        self,
        question: str,
        attempts: list[Classification],
        arguments: dict[str, Any],
        rows: tuple[dict[str, Any], ...],
        error: str | None,
        context: RAGContext | None,
    ) -> InterpretationResult:
        return InterpretationResult(
            question=question,
            classification=attempts[-1],
            attempts=tuple(attempts),
            arguments=arguments,
            rows=rows,
            error=error,
            context=context,
        )


def create_interpreter(
    config: NLQueryConfig,
    executor: DataExecutor,
    retriever: ContextRetriever | None = None,
) -> QueryInterpreter:
    """Wire an interpreter from configuration."""
    return QueryInterpreter(
        llm=create_llm_client(config),
        executor=executor,
        retriever=retriever,
        size_calculator=SizeTierCalculator(ttl_seconds=config.percentile_ttl_hours * 3600),
        column_cache=ColumnValueCache(
            executor,
            table_name=config.fee_table_name,
            refresh_interval=config.column_cache_refresh_seconds,
        ),
        max_corrections=config.max_corrections,
        top_k=config.rag_top_k,
        fee_table_name=config.fee_table_name,
    )


def _expand_terms(value: str | list[Any], resolve: Callable[[str], list[str]]) -> str | list[Any]:
    """Resolve each term, de-duplicated in order; a single result stays a scalar."""
    terms = value if isinstance(value, list) else [value]
    resolved: list[Any] = []
    for term in terms:
        for item in resolve(term) if isinstance(term, str) else [term]:
            if item not in resolved:
                resolved.append(item)
    return resolved[0] if len(resolved) == 1 else resolved
