"""
Self-Correction Policy

Builds ErrorFeedback from a failed execution and applies deterministic
guards to a corrected classification:

- snap hinted argument values to the closest valid database value
- keep explicit date filters exactly as first extracted
- on no_results with three or more filters, drop at most one, relaxing
  category/status before anything else and never person or date filters
"""

from __future__ import annotations

import difflib
import logging
from typing import Any, Final

from src.nlquery.executor import ExecutionResult
from src.nlquery.models import Classification, ErrorFeedback, FeedbackErrorType

logger = logging.getLogger(__name__)

PERSON_ARGUMENTS: Final = frozenset({"poc", "point_of_contact", "sales_rep"})
DATE_ARGUMENTS: Final = frozenset(
    {"time_reference", "start_date", "end_date", "year", "years", "quarter", "month"}
)
# Relaxed first, in this order
RELAX_FIRST_ARGUMENTS: Final[tuple[str, ...]] = (
    "category",
    "categories",
    "status",
    "project_type",
    "tags",
    "size",
)
# Shape the result set rather than filter it
NON_FILTER_ARGUMENTS: Final = frozenset({"limit", "sort", "order", "order_by"})

# hint key -> (prompt label, how many values to show, argument names it governs)
HINT_FIELDS: Final[dict[str, tuple[str, int | None, tuple[str, ...]]]] = {
    "status": ("Status options", None, ("status",)),
    "category": ("Category options", None, ("category", "categories")),
    "project_type": ("Project Type options", None, ("project_type",)),
    "client": ("Sample clients", 10, ("client",)),
    "state": ("State options", 15, ("state_code", "state")),
}

SNAP_CUTOFF: Final = 0.6


def active_filters(arguments: dict[str, Any]) -> dict[str, Any]:
    """Arguments that restrict rows, ignoring empty values and limits."""
    return {
        k: v
        for k, v in arguments.items()
        if k not in NON_FILTER_ARGUMENTS and v not in (None, "", [], {})
    }


def build_feedback(
    classification: Classification,
    result: ExecutionResult,
    database_hints: dict[str, tuple[str, ...]] | None = None,
) -> ErrorFeedback | None:
    """
    Describe why an executed classification failed.

    Returns:
        ErrorFeedback, or None when the execution succeeded
    """
    if classification.failed:
        error_type = FeedbackErrorType.CLASSIFICATION_ERROR
        message = classification.error or ""
    else:
        failure = result.failure_type
        if failure is None:
            return None
        error_type = failure
        message = result.error or "Query returned 0 rows"

    return ErrorFeedback(
        previous_function=classification.function_name,
        previous_args=dict(classification.arguments),
        error_type=error_type,
        error_message=message,
        database_hints=database_hints,
    )


def _snap_value(value: Any, valid: tuple[str, ...]) -> Any:
    if not isinstance(value, str) or not valid:
        return value

    lowered = {v.lower(): v for v in valid}
    if value.lower() in lowered:
        return lowered[value.lower()]

    match = difflib.get_close_matches(value.lower(), list(lowered), n=1, cutoff=SNAP_CUTOFF)
    if match:
        return lowered[match[0]]
    return value


def snap_to_hints(
    arguments: dict[str, Any],
    database_hints: dict[str, tuple[str, ...]] | None,
) -> dict[str, Any]:
    """
    Replace hinted argument values with the closest valid database value.

    Values with no reasonably close match are left unchanged.
    """
    if not database_hints:
        return dict(arguments)

    snapped = dict(arguments)
    for hint_key, (_, _, argument_names) in HINT_FIELDS.items():
        valid = tuple(database_hints.get(hint_key) or ())
        if not valid:
            continue
        for name in argument_names:
            if name not in snapped:
                continue
            value = snapped[name]
            if isinstance(value, list):
                new_value: Any = [_snap_value(v, valid) for v in value]
            else:
                new_value = _snap_value(value, valid)
            if new_value != value:
                logger.info(f"Snapped {name}={value!r} to valid value {new_value!r}")
            snapped[name] = new_value
    return snapped


def _relax_rank(name: str) -> int:
    """Lower ranks are relaxed first."""
    if name in RELAX_FIRST_ARGUMENTS:
        return RELAX_FIRST_ARGUMENTS.index(name)
    return len(RELAX_FIRST_ARGUMENTS)


def enforce_filter_retention(
    feedback: ErrorFeedback,
    corrected: Classification,
) -> Classification:
    """
    Undo over-eager relaxation in a no_results correction.

    Date filters are restored to their original values. When three or more
    filters were present and the model dropped more than one, every dropped
    filter but the most relaxable one is restored. Person and date filters
    are never the one left out.
    """
    if corrected.failed or feedback.error_type != FeedbackErrorType.NO_RESULTS:
        return corrected

    original = active_filters(feedback.previous_args)
    arguments = dict(corrected.arguments)

    for name, value in original.items():
        if name in DATE_ARGUMENTS and arguments.get(name) != value:
            arguments[name] = value

    if len(original) >= 3:
        still_active = active_filters(arguments)
        dropped = [name for name in original if name not in still_active]
        if len(dropped) > 1:
            relaxable = [n for n in dropped if n not in PERSON_ARGUMENTS]
            keep_dropped = min(relaxable, key=_relax_rank) if relaxable else None
            for name in dropped:
                if name != keep_dropped:
                    arguments[name] = original[name]
            logger.info(
                f"Restored {len(dropped) - (1 if keep_dropped else 0)} dropped filter(s); "
                f"relaxing only {keep_dropped!r}"
            )

    if arguments == corrected.arguments:
        return corrected
    return corrected.with_arguments(arguments)


def apply_correction_guards(feedback: ErrorFeedback, corrected: Classification) -> Classification:
    """Snap to hinted values, then enforce filter retention."""
    if corrected.failed:
        return corrected
    snapped = corrected.with_arguments(snap_to_hints(corrected.arguments, feedback.database_hints))
    return enforce_filter_retention(feedback, snapped)
