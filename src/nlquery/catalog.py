"""
Default Query Function Catalog

The vocabulary of query functions the classifier may choose from for the
project/proposal dataset. Callers with their own template registry pass
their own FunctionSpec sequence instead.
"""

from __future__ import annotations

from src.nlquery.models import FunctionSpec, ParameterSpec

_TIME_REFERENCE = ParameterSpec(
    type="string",
    description='Time expression exactly as the user wrote it, e.g. "Q4 2024", "next 6 months"',
)
_START_DATE = ParameterSpec(type="string", description="Inclusive start date, YYYY-MM-DD")
_END_DATE = ParameterSpec(type="string", description="Inclusive end date, YYYY-MM-DD")
_LIMIT = ParameterSpec(type="integer", description="Maximum rows to return")

DEFAULT_FUNCTIONS: tuple[FunctionSpec, ...] = (
    FunctionSpec(
        name="get_projects_by_combined_filters",
        description=(
            "Retrieves projects using any mix of filters: size, date, status, "
            "location, category, client, point of contact"
        ),
        parameters={
            "size": ParameterSpec(description="Micro, Small, Medium, Large or Mega"),
            "status": ParameterSpec(description="Project status or list of statuses"),
            "category": ParameterSpec(description="Request category"),
            "project_type": ParameterSpec(description="Specific project type"),
            "state_code": ParameterSpec(description="US state name or code"),
            "region": ParameterSpec(description="Geographic region such as midwest"),
            "client": ParameterSpec(description="Client name"),
            "poc": ParameterSpec(description="Point of contact / sales rep"),
            "min_fee": ParameterSpec(type="number"),
            "max_fee": ParameterSpec(type="number"),
            "time_reference": _TIME_REFERENCE,
            "start_date": _START_DATE,
            "end_date": _END_DATE,
            "limit": _LIMIT,
        },
        examples=(
            "Mega projects starting in the next 6 months",
            "Large healthcare projects in California",
            "Projects in California in Q4 2024",
        ),
    ),
    FunctionSpec(
        name="get_projects_by_date_range",
        description="Retrieves projects starting within a date range",
        parameters={
            "time_reference": _TIME_REFERENCE,
            "start_date": _START_DATE,
            "end_date": _END_DATE,
        },
        examples=(
            "Projects between January and March 2024",
            "Projects starting from 2023-01-01",
            "Projects before 2022",
        ),
    ),
    FunctionSpec(
        name="get_projects_by_status",
        description="Retrieves projects by their current status",
        parameters={"status": ParameterSpec(required=True), "limit": _LIMIT},
        examples=("Show won projects", "Projects that are submitted or pursuing"),
    ),
    FunctionSpec(
        name="get_projects_by_category",
        description="Retrieves all projects in a request category",
        parameters={"category": ParameterSpec(required=True), "time_reference": _TIME_REFERENCE},
        examples=("Healthcare projects", "Show me education projects"),
    ),
    FunctionSpec(
        name="get_projects_by_project_type",
        description="Retrieves projects of a specific project type",
        parameters={"project_type": ParameterSpec(required=True)},
        examples=("Hospital projects", "Show me aviation projects"),
    ),
    FunctionSpec(
        name="get_projects_by_state",
        description="Retrieves projects located in a US state",
        parameters={"state_code": ParameterSpec(required=True), "time_reference": _TIME_REFERENCE},
        examples=("Projects in California", "Texas construction projects"),
    ),
    FunctionSpec(
        name="get_projects_by_client",
        description="Retrieves projects for a specific client",
        parameters={"client": ParameterSpec(required=True), "time_reference": _TIME_REFERENCE},
        examples=("Projects for ABC Company", "All Acme client projects"),
    ),
    FunctionSpec(
        name="get_projects_by_poc",
        description="Retrieves projects managed by a point of contact / sales rep",
        parameters={"poc": ParameterSpec(required=True), "time_reference": _TIME_REFERENCE},
        examples=("Projects managed by John Smith",),
    ),
    FunctionSpec(
        name="get_projects_by_fee_range",
        description="Retrieves projects whose fee falls within a range",
        parameters={
            "min_fee": ParameterSpec(type="number"),
            "max_fee": ParameterSpec(type="number"),
        },
        examples=("Projects over 10 million", "Projects between 5 and 20 million"),
    ),
    FunctionSpec(
        name="get_projects_by_win_range",
        description="Retrieves projects by chance-of-success percentage",
        parameters={
            "min_win": ParameterSpec(type="number"),
            "max_win": ParameterSpec(type="number"),
        },
        examples=("High probability projects above 70%",),
    ),
    FunctionSpec(
        name="get_projects_by_tags",
        description="Retrieves projects carrying one or more tags",
        parameters={"tags": ParameterSpec(type="array", required=True)},
        examples=("Projects with Rail and Transit tags",),
    ),
    FunctionSpec(
        name="get_largest_projects",
        description="Returns the largest projects sorted by fee",
        parameters={
            "limit": _LIMIT,
            "category": ParameterSpec(),
            "state_code": ParameterSpec(),
            "time_reference": _TIME_REFERENCE,
        },
        examples=("Top 10 largest projects", "Biggest projects in Texas"),
    ),
    FunctionSpec(
        name="get_smallest_projects",
        description="Returns the smallest projects sorted by fee",
        parameters={"limit": _LIMIT},
        examples=("Cheapest projects",),
    ),
    FunctionSpec(
        name="get_top_clients",
        description="Ranks clients by total fee",
        parameters={"limit": _LIMIT, "time_reference": _TIME_REFERENCE},
        examples=("Top 5 clients by revenue",),
    ),
    FunctionSpec(
        name="get_category_breakdown",
        description="Aggregates project counts and fees by request category",
        parameters={"time_reference": _TIME_REFERENCE},
        examples=("Breakdown by category",),
    ),
    FunctionSpec(
        name="get_size_distribution",
        description="Aggregates projects by size tier",
        parameters={"time_reference": _TIME_REFERENCE},
        examples=("Project size distribution",),
    ),
    FunctionSpec(
        name="count_projects",
        description="Counts projects matching the given filters",
        parameters={
            "category": ParameterSpec(),
            "status": ParameterSpec(),
            "state_code": ParameterSpec(),
            "time_reference": _TIME_REFERENCE,
        },
        examples=("How many healthcare projects are there?",),
    ),
    FunctionSpec(
        name="search_projects_by_keyword",
        description="Full-text search over project titles, clients and tags",
        parameters={"keyword": ParameterSpec(required=True), "time_reference": _TIME_REFERENCE},
        examples=("Find highway projects", "Show me Google projects"),
    ),
)


def get_function(name: str, functions: tuple[FunctionSpec, ...] = DEFAULT_FUNCTIONS) -> FunctionSpec | None:
    """Look up a function by name."""
    for spec in functions:
        if spec.name == name:
            return spec
    return None
