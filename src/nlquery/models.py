"""
NLQuery Data Models

Value objects exchanged between the classifier, the parsers, the
self-correction loop and the Data Executor.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

NO_FUNCTION = "none"


class ClassificationErrorKind(str, Enum):
    """Why a classification attempt produced no usable result."""

    RATE_LIMIT = "rate_limit"
    PARSE_ERROR = "parse_error"
    OTHER = "other"


class FeedbackErrorType(str, Enum):
    """How an executed classification failed downstream."""

    NO_RESULTS = "no_results"
    SQL_ERROR = "sql_error"
    CLASSIFICATION_ERROR = "classification_error"


@dataclass(frozen=True)
class ParameterSpec:
    """A single parameter accepted by a query function."""

    type: str = "string"
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class FunctionSpec:
    """
    A query function the classifier may select.

    Owned by the caller's template registry; read-only to the engine.
    """

    name: str
    description: str
    parameters: dict[str, ParameterSpec] = field(default_factory=dict)
    examples: tuple[str, ...] = ()

    def to_prompt_dict(self) -> dict[str, Any]:
        """Render as a JSON-schema style function definition."""
        properties: dict[str, Any] = {}
        for name, spec in self.parameters.items():
            prop: dict[str, Any] = {"type": spec.type}
            if spec.description:
                prop["description"] = spec.description
            properties[name] = prop
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": [n for n, s in self.parameters.items() if s.required],
            },
        }

    def summary(self, max_description: int = 100) -> dict[str, str]:
        """Compact form used when prompt size matters."""
        return {"name": self.name, "description": self.description[:max_description]}


@dataclass(frozen=True)
class Classification:
    """
    Structured interpretation of a question.

    Produced once per attempt. Corrections create a new instance; prior
    attempts are kept by the caller.
    """

    function_name: str = NO_FUNCTION
    arguments: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    error_kind: ClassificationErrorKind | None = None
    retry_after: int | None = None

    @property
    def failed(self) -> bool:
        """True when the attempt carries an error."""
        return self.error is not None

    @property
    def is_none(self) -> bool:
        """True when no function was selected."""
        return self.function_name == NO_FUNCTION

    def with_arguments(self, arguments: dict[str, Any]) -> Classification:
        """Copy with replaced arguments."""
        return Classification(
            function_name=self.function_name,
            arguments=dict(arguments),
            error=self.error,
            error_kind=self.error_kind,
            retry_after=self.retry_after,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        result: dict[str, Any] = {
            "function_name": self.function_name,
            "arguments": dict(self.arguments),
        }
        if self.error is not None:
            result["error"] = self.error
            if self.error_kind is not None:
                result["error_kind"] = self.error_kind.value
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        return result


@dataclass(frozen=True)
class ErrorFeedback:
    """Why a previous classification failed when executed."""

    previous_function: str
    previous_args: dict[str, Any]
    error_type: FeedbackErrorType
    error_message: str = ""
    database_hints: dict[str, tuple[str, ...]] | None = None


@dataclass(frozen=True)
class PercentileData:
    """Fee percentiles used for size-tier thresholds."""

    p20: float
    p40: float
    p60: float
    p80: float
    min: float
    max: float
    total_projects: int
    calculated_at: float

    @property
    def thresholds(self) -> tuple[float, float, float, float]:
        return (self.p20, self.p40, self.p60, self.p80)

    def is_valid(self) -> bool:
        """All scalars must be finite numbers."""
        values = (*self.thresholds, self.min, self.max, self.total_projects)
        return all(
            isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
            for v in values
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "p20": self.p20,
            "p40": self.p40,
            "p60": self.p60,
            "p80": self.p80,
            "min": self.min,
            "max": self.max,
            "total_projects": self.total_projects,
            "calculated_at": self.calculated_at,
        }


@dataclass(frozen=True)
class RAGContext:
    """
    Retrieved background material for grounding a classification.

    Built fresh per retrieval call. Confidence is the mean similarity score
    of the returned matches, 0.0 when nothing was retrieved.
    """

    functions: tuple[dict[str, Any], ...] = ()
    schemas: tuple[dict[str, Any], ...] = ()
    examples: tuple[dict[str, Any], ...] = ()
    parameters: tuple[dict[str, Any], ...] = ()
    confidence: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not (self.functions or self.schemas or self.examples or self.parameters)


@dataclass(frozen=True)
class ClassificationRequest:
    """Inputs of a single classification attempt."""

    question: str
    available_functions: tuple[FunctionSpec, ...]
    retrieved_context: RAGContext | None = None


# (start, end) in YYYY-MM-DD; an empty side is an open boundary.
TimeRange = tuple[str, str]
