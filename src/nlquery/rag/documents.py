"""
Vector Documents

Atomic documents indexed for context retrieval: one per query function,
schema field, parameter mapping and known-good example query. Each document
is self-contained so a single match is useful on its own.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.nlquery.models import FunctionSpec
from src.nlquery.parsing.size_tiers import FALLBACK_THRESHOLDS, TIERS

logger = logging.getLogger(__name__)


class DocumentType(str, Enum):
    """Types of documents in the vector index."""

    FUNCTION = "function"
    SCHEMA = "schema"
    EXAMPLE = "example"
    PARAMETER = "parameter"


@dataclass(frozen=True)
class VectorDocument:
    """
    A single indexed document.

    `content` holds the structured payload; `to_text()` is what gets embedded.
    """

    id: str
    type: DocumentType
    category: str
    content: dict[str, Any] = field(default_factory=dict)
    atomic: bool = True
    complete: bool = True

    def to_text(self) -> str:
        """Serialize content into the text that is embedded."""
        c = self.content
        if self.type == DocumentType.FUNCTION:
            lines = [
                f"Function: {c.get('function_name', '')}",
                f"Description: {c.get('description', '')}",
                f"Parameters: {', '.join(c.get('parameters', []))}",
            ]
            if c.get("examples"):
                lines.append(f"Examples: {'; '.join(c['examples'])}")
            return "\n".join(lines)

        if self.type == DocumentType.SCHEMA:
            lines = [f"Field: {c.get('field', '')}", f"Meaning: {c.get('meaning', '')}"]
            if c.get("categories"):
                tiers = ", ".join(f"{k}: {v}" for k, v in c["categories"].items())
                lines.append(f"Categories: {tiers}")
            if c.get("values"):
                lines.append(f"Values: {', '.join(c['values'])}")
            if c.get("examples"):
                lines.append(f"Examples: {', '.join(c['examples'])}")
            return "\n".join(lines)

        if self.type == DocumentType.EXAMPLE:
            return "\n".join(
                [
                    f"Question: {c.get('question', '')}",
                    f"Function: {c.get('function', '')}",
                    f"Parameters: {json.dumps(c.get('params', {}), sort_keys=True)}",
                ]
            )

        return "\n".join(
            [
                f"Term: {c.get('user_term', '')}",
                f"Meaning: {c.get('meaning', '')}",
                f"Aliases: {', '.join(c.get('aliases', []))}",
            ]
        )

    def metadata(self) -> dict[str, Any]:
        """Flat metadata stored next to the vector. Content travels as JSON."""
        return {
            "type": self.type.value,
            "atomic": self.atomic,
            "complete": self.complete,
            "category": self.category,
            "content": json.dumps(self.content),
        }


def _money(value: float) -> str:
    if value >= 1_000_000:
        return f"${value / 1_000_000:g}M"
    if value >= 1_000:
        return f"${value / 1_000:g}K"
    return f"${value:g}"


def _tier_meanings(
    thresholds: tuple[float, float, float, float] = FALLBACK_THRESHOLDS,
) -> dict[str, str]:
    t1, t2, t3, t4 = thresholds
    return {
        "Micro": f"Less than {_money(t1)}",
        "Small": f"{_money(t1)} - {_money(t2)}",
        "Medium": f"{_money(t2)} - {_money(t3)}",
        "Large": f"{_money(t3)} - {_money(t4)}",
        "Mega": f"Greater than {_money(t4)}",
    }


def build_function_documents(functions: Iterable[FunctionSpec]) -> list[VectorDocument]:
    """One document per query function, id `func_<name>`."""
    return [
        VectorDocument(
            id=f"func_{spec.name}",
            type=DocumentType.FUNCTION,
            category="query_function",
            content={
                "function_name": spec.name,
                "description": spec.description,
                "parameters": list(spec.parameters),
                "optional_params": [n for n, p in spec.parameters.items() if not p.required],
                "examples": list(spec.examples),
            },
        )
        for spec in functions
    ]


def _schema(field_id: str, **content: Any) -> VectorDocument:
    return VectorDocument(
        id=f"schema_field_{field_id}",
        type=DocumentType.SCHEMA,
        category="database_schema",
        content=content,
    )


def build_schema_documents() -> list[VectorDocument]:
    return [
        _schema(
            "Fee",
            field="Fee",
            meaning="Project cost, budget, or contract value in dollars",
            categories=_tier_meanings(),
            examples=["$100,000", "$2.5M", "$925M"],
        ),
        _schema(
            "StartDate",
            field="Start Date",
            meaning="Date when the project begins or is scheduled to start",
            examples=["2024-01-15", "2025-06-30"],
        ),
        _schema(
            "Status",
            field="Status",
            meaning="Current stage or state of the project",
            values=["Lead", "Proposal", "Submitted", "Won", "Lost", "Active", "On Hold"],
            examples=["Lead status means potential project", "Won means contract awarded"],
        ),
        _schema(
            "Category",
            field="Request Category",
            meaning="Industry or sector classification of the project",
            examples=["Healthcare", "Education", "Commercial", "Residential", "Infrastructure"],
        ),
        _schema(
            "ProjectType",
            field="Project Type",
            meaning="Specific type or classification of construction project",
            examples=["Hospitals", "Schools", "Office Buildings", "Roads", "Bridges"],
        ),
        _schema(
            "State",
            field="State",
            meaning="US state where the project is located",
            examples=["CA (California)", "NY (New York)", "TX (Texas)"],
        ),
    ]


SIZE_ALIASES: dict[str, list[str]] = {
    "Mega": ["huge", "massive", "largest", "biggest", "giant"],
    "Large": ["big", "major"],
    "Medium": ["mid-sized", "moderate"],
    "Small": ["minor", "little"],
    "Micro": ["tiny", "smallest", "minimal"],
}

QUARTER_TERMS: tuple[tuple[str, str, str, str], ...] = (
    ("Q1", "First", "January, February, March (months 1-3)", "Jan-Mar"),
    ("Q2", "Second", "April, May, June (months 4-6)", "Apr-Jun"),
    ("Q3", "Third", "July, August, September (months 7-9)", "Jul-Sep"),
    ("Q4", "Fourth", "October, November, December (months 10-12)", "Oct-Dec"),
)


def _parameter(doc_id: str, term: str, meaning: str, aliases: list[str]) -> VectorDocument:
    return VectorDocument(
        id=doc_id,
        type=DocumentType.PARAMETER,
        category="parameter_mapping",
        content={"user_term": term, "meaning": meaning, "aliases": aliases},
    )


def build_parameter_documents() -> list[VectorDocument]:
    """Mappings from user vocabulary to parameter values."""
    meanings = _tier_meanings()
    documents = [
        _parameter(
            f"param_size_{tier.lower()}",
            tier.lower(),
            f"Projects with fee {meanings[tier][0].lower()}{meanings[tier][1:]}",
            SIZE_ALIASES[tier],
        )
        for tier in reversed(TIERS)
    ]

    for quarter, ordinal, months, span in QUARTER_TERMS:
        number = quarter[1]
        documents.append(
            _parameter(
                f"param_time_{quarter.lower()}",
                quarter,
                f"{ordinal} quarter: {months}",
                [f"{ordinal.lower()} quarter", quarter, f"quarter {number}", span],
            )
        )

    documents.append(
        _parameter(
            "param_time_next_months",
            "next months",
            "Time period starting from today extending forward",
            ["upcoming months", "coming months", "next few months"],
        )
    )
    documents.append(
        _parameter(
            "param_time_last_months",
            "last months",
            "Time period going backwards from today",
            ["past months", "previous months", "recent months"],
        )
    )
    return documents


EXAMPLE_QUERIES: tuple[tuple[str, str, dict[str, Any]], ...] = (
    (
        "Show me all mega sized projects starting in the next ten months",
        "get_projects_by_combined_filters",
        {"size": "Mega", "time_reference": "next ten months"},
    ),
    (
        "Top 10 largest healthcare projects",
        "get_largest_projects",
        {"category": "Healthcare", "limit": 10},
    ),
    (
        "Projects in California in Q4 2024",
        "get_projects_by_combined_filters",
        {"state_code": "California", "time_reference": "Q4 2024"},
    ),
    (
        "Large projects starting next year",
        "get_projects_by_combined_filters",
        {"size": "Large", "time_reference": "next year"},
    ),
    (
        "How many healthcare projects are there?",
        "count_projects",
        {"category": "Healthcare"},
    ),
)


def build_example_documents() -> list[VectorDocument]:
    return [
        VectorDocument(
            id=f"example_{i}",
            type=DocumentType.EXAMPLE,
            category="successful_query",
            content={"question": question, "function": function, "params": params, "success": True},
        )
        for i, (question, function, params) in enumerate(EXAMPLE_QUERIES, start=1)
    ]


def build_all_documents(functions: Iterable[FunctionSpec]) -> list[VectorDocument]:
    """Build every document type for indexing."""
    function_docs = build_function_documents(functions)
    schema_docs = build_schema_documents()
    parameter_docs = build_parameter_documents()
    example_docs = build_example_documents()

    documents = function_docs + schema_docs + parameter_docs + example_docs
    logger.info(
        f"Built {len(documents)} documents: {len(function_docs)} functions, "
        f"{len(schema_docs)} schema, {len(parameter_docs)} parameters, "
        f"{len(example_docs)} examples"
    )
    return documents
