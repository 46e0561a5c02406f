"""
Prompt Construction

System and user prompts for classification and self-correction.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from datetime import date

from src.nlquery.correction import HINT_FIELDS
from src.nlquery.models import ClassificationRequest, ErrorFeedback, FunctionSpec, RAGContext

SCHEMA_REFERENCE = """\
DATABASE SCHEMA REFERENCE (column names):
- Title: Project name (e.g. "PID1234 - Highway Extension")
- Fee: Dollar value (e.g. 5000000 for $5M)
- ChanceOfSuccess: Win probability percentage (0-100)
- StatusChoice: Project status ("Won", "Lost", "Submitted", "Proposal", "Pursuing", "Dormant")
- RequestCategory: Business category ("Transportation", "Water", "Healthcare", "Education", ...)
- ProjectType: Specific project type ("Hospitals", "Higher Education", "Bridges", "Solar", ...)
- State: US state (e.g. "California", "Texas")
- Client: Client/customer name
- Company: Contracting company
- PointOfContact: Sales rep / point of contact
- ConstStartDate: Construction start date
- Tags: Comma-separated keywords"""

INSTRUCTIONS = """\
INSTRUCTIONS:
1. Extract ALL filters mentioned: status, category, location, dates, amounts, people, entities.
2. Copy any time expression exactly as written into "time_reference" ("Q4 2024",
   "next 6 months", "since 2021"). Do not convert it to dates yourself.
3. "top N" / "first N" / "N largest" -> "limit": N.
4. Keep entity, client and person names exactly as the user wrote them.
5. Size words (micro, small, medium, large, mega) -> "size".
6. Synonyms: "open/active" -> status ["Submitted", "Proposal", "Pursuing"];
   "closed" -> status ["Won", "Lost"]; "value/worth" -> fee range;
   "chance/probability" -> win range.
7. If no function fits, use "function_name": "none"."""

FEW_SHOT_EXAMPLES = """\
EXAMPLES:
User: "Show won projects"
-> {"function_name": "get_projects_by_status", "arguments": {"status": "Won"}}

User: "mega sized projects starting in the next 6 months"
-> {"function_name": "get_projects_by_combined_filters", "arguments": {"size": "Mega", "time_reference": "next 6 months"}}

User: "projects between 5 and 20 million"
-> {"function_name": "get_projects_by_fee_range", "arguments": {"min_fee": 5000000, "max_fee": 20000000}}

User: "projects in California in Q4 2024"
-> {"function_name": "get_projects_by_combined_filters", "arguments": {"state_code": "California", "time_reference": "Q4 2024"}}

User: "top 10 largest projects"
-> {"function_name": "get_largest_projects", "arguments": {"limit": 10}}

User: "projects managed by John Smith since 2023"
-> {"function_name": "get_projects_by_poc", "arguments": {"poc": "John Smith", "time_reference": "since 2023"}}

User: "won Transportation projects in Texas over 5 million"
-> {"function_name": "get_projects_by_combined_filters", "arguments": {"status": "Won", "category": "Transportation", "state_code": "Texas", "min_fee": 5000000}}

User: "find highway projects"
-> {"function_name": "search_projects_by_keyword", "arguments": {"keyword": "highway"}}"""

CORRECTION_STRATEGIES = """\
SELF-CORRECTION STRATEGIES:
1. For "no_results": keep most filters and relax only ONE filter at a time.
2. Keep person/point-of-contact filters and date filters; relax category/status filters first.
3. If a status/category value does not match exactly, use the closest valid value listed above.
4. For "sql_error": the function may not support those parameters; choose a simpler function.
5. Do not change dates the user stated explicitly ("this year", "last year", "in 2025").
6. If the original had 3 or more filters, keep at least all but one of them.
7. If nothing matches after relaxing category, keep the dates and return the closest query."""


def _format_context(context: RAGContext) -> str:
    sections: list[str] = []
    for title, blocks in (
        ("Relevant functions", context.functions),
        ("Schema notes", context.schemas),
        ("Parameter mappings", context.parameters),
        ("Similar questions", context.examples),
    ):
        if blocks:
            lines = "\n".join(f"- {json.dumps(block, default=str)}" for block in blocks)
            sections.append(f"{title}:\n{lines}")
    return "RETRIEVED CONTEXT:\n" + "\n\n".join(sections)


def build_classification_system_prompt(today: date, context: RAGContext | None = None) -> str:
    """System prompt for classification with today's date and optional retrieved context."""
    parts = [
        "You are an expert function classifier for a database of project/proposal data.",
        f"TODAY'S DATE: {today.isoformat()}",
        "Select the BEST function for the user's question and extract its parameters.",
        SCHEMA_REFERENCE,
        INSTRUCTIONS,
        FEW_SHOT_EXAMPLES,
    ]
    if context is not None and not context.is_empty:
        parts.append(_format_context(context))
    parts.append('Return ONLY valid JSON with "function_name" and "arguments" fields.')
    return "\n\n".join(parts)


def build_classification_user_message(request: ClassificationRequest) -> str:
    catalog = json.dumps([f.to_prompt_dict() for f in request.available_functions], indent=2)
    return (
        f'Question: "{request.question}"\n\n'
        f"Available functions: {catalog}\n\n"
        "Select the best function and extract parameters."
    )


def _format_hints(hints: dict[str, tuple[str, ...]]) -> str:
    lines = []
    for key, (label, limit, _) in HINT_FIELDS.items():
        values = hints.get(key)
        if values:
            shown = list(values)[:limit] if limit else list(values)
            lines.append(f"- {label}: {', '.join(shown)}")
    if not lines:
        return ""
    return "VALID DATABASE VALUES (use these EXACT values):\n" + "\n".join(lines)


def build_correction_system_prompt(question: str, feedback: ErrorFeedback) -> str:
    """System prompt describing the failed attempt and how to correct it."""
    parts = [
        "You are an expert function classifier correcting a previous mistake.",
        "PREVIOUS ATTEMPT FAILED:\n"
        f"- Function used: {feedback.previous_function}\n"
        f"- Arguments: {json.dumps(feedback.previous_args, indent=2, default=str)}\n"
        f"- Error type: {feedback.error_type.value}\n"
        f"- Error message: {feedback.error_message}",
    ]
    if feedback.database_hints:
        hints = _format_hints(feedback.database_hints)
        if hints:
            parts.append(hints)
    parts.append(CORRECTION_STRATEGIES)
    parts.append(f'User\'s original question: "{question}"')
    parts.append(
        "Select a CORRECTED function and parameters. Return ONLY valid JSON:\n"
        '{"function_name": "...", "arguments": {...}}'
    )
    return "\n\n".join(parts)


def build_correction_user_message(functions: Sequence[FunctionSpec], max_description: int = 100) -> str:
    summary = json.dumps([f.summary(max_description) for f in functions], indent=1)
    return (
        f"Available functions ({len(functions)} total): {summary}\n\n"
        "Provide a corrected classification."
    )
