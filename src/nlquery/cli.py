"""
NLQuery CLI

Command-line entry point for trying the parsers, classifying questions and
managing the retrieval index.

Usage:
    python -m src.nlquery.cli parse-time "next 3 months" --today 2026-01-20
    python -m src.nlquery.cli classify "Large healthcare projects in Texas"
    python -m src.nlquery.cli interpret "Projects in California in Q4 2024" --rows rows.json
    python -m src.nlquery.cli index
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.common.logging import configure_sanitized_logging
from src.nlquery.catalog import DEFAULT_FUNCTIONS
from src.nlquery.config import load_config
from src.nlquery.exceptions import NLQueryError
from src.nlquery.executor import InMemoryExecutor
from src.nlquery.parsing import NumberCalculator, parse_time_reference

logger = logging.getLogger(__name__)

console = Console()

app = typer.Typer(
    name="nlquery",
    help="NLQuery - natural-language query interpretation for project data",
    no_args_is_help=True,
)

# Classifier argument name -> dataset column, for --rows demos
DEMO_COLUMN_MAP: dict[str, str] = {
    "state_code": "State",
    "state": "State",
    "status": "StatusChoice",
    "category": "RequestCategory",
    "project_type": "ProjectType",
    "client": "Client",
    "poc": "PointOfContact",
    "region": "Region",
}


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    config = load_config()
    configure_sanitized_logging(level="DEBUG" if verbose else config.log_level)


@app.command("parse-time")
def parse_time(
    text: str = typer.Argument(..., help="Time expression, e.g. 'Q4 2024'"),
    today: str | None = typer.Option(None, "--today", help="Reference date (YYYY-MM-DD)"),
) -> None:
    """Resolve a time expression to a date range."""
    reference = date.fromisoformat(today) if today else None
    result = parse_time_reference(text, today=reference)
    if result is None:
        console.print(f"[yellow]No time range recognized in[/yellow] {text!r}")
        raise typer.Exit(1)

    start, end = result
    console.print(f"start: {start or '(open)'}")
    console.print(f"end:   {end or '(open)'}")


@app.command("parse-number")
def parse_number(
    text: str = typer.Argument(..., help="Text containing an amount, range or limit"),
) -> None:
    """Extract amounts, ranges and limits from text."""
    table = Table(show_header=True)
    table.add_column("Parser")
    table.add_column("Result")
    table.add_row("number", str(NumberCalculator.parse_number(text)))
    table.add_row("range", str(NumberCalculator.parse_range(text)))
    table.add_row("limit", str(NumberCalculator.parse_limit(text)))
    console.print(table)


@app.command()
def classify(
    question: str = typer.Argument(..., help="Question to classify"),
    no_context: bool = typer.Option(False, "--no-context", help="Skip vector retrieval"),
) -> None:
    """Classify a question into a query function and arguments."""
    try:
        result = asyncio.run(_classify(question, use_context=not no_context))
    except NLQueryError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    style = "red" if result.failed else "green"
    console.print(
        Panel(json.dumps(result.to_dict(), indent=2), title="Classification", border_style=style)
    )
    if result.failed:
        raise typer.Exit(1)


async def _classify(question: str, use_context: bool):
    from src.nlquery.llm import create_llm_client

    config = load_config()
    llm = create_llm_client(config)
    context = None
    if use_context and config.pinecone_api_key:
        from src.nlquery.rag import create_vector_store

        store = create_vector_store(config)
        context = await store.retrieve_context(question, config.rag_top_k)
    return await llm.classify(question, DEFAULT_FUNCTIONS, context)


@app.command()
def interpret(
    question: str = typer.Argument(..., help="Question to interpret and execute"),
    rows: Path | None = typer.Option(None, "--rows", "-r", help="JSON file with a list of row objects"),
) -> None:
    """Interpret a question and run it against rows loaded from a JSON file."""
    if rows is not None and not rows.exists():
        console.print(f"[red]Error:[/red] File not found: {rows}")
        raise typer.Exit(1)

    data = json.loads(rows.read_text()) if rows else []
    try:
        result = asyncio.run(_interpret(question, data))
    except NLQueryError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(Panel(json.dumps(result.to_dict(), indent=2), title="Interpretation"))
    if result.rows:
        table = Table(show_header=True)
        columns = list(result.rows[0])
        for column in columns:
            table.add_column(column)
        for row in result.rows[:20]:
            table.add_row(*(str(row.get(c, "")) for c in columns))
        console.print(table)
    if not result.succeeded:
        raise typer.Exit(1)


async def _interpret(question: str, data: list[dict]):
    from src.nlquery.interpreter import create_interpreter

    config = load_config()
    retriever = None
    if config.pinecone_api_key:
        from src.nlquery.rag import create_vector_store

        retriever = create_vector_store(config)
    executor = InMemoryExecutor(rows=data, column_map=DEMO_COLUMN_MAP)
    interpreter = create_interpreter(config, executor, retriever=retriever)
    return await interpreter.interpret(question)


@app.command()
def index(
    clear: bool = typer.Option(False, "--clear", help="Delete existing vectors first"),
) -> None:
    """Build and upsert retrieval documents into the vector index."""
    try:
        count = asyncio.run(_index(clear))
    except NLQueryError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]Indexed {count} documents[/green]")


async def _index(clear: bool) -> int:
    from src.nlquery.rag import build_all_documents, create_vector_store

    store = create_vector_store(load_config())
    if clear:
        await store.clear_index()
    return await store.upsert_documents(build_all_documents(DEFAULT_FUNCTIONS))


@app.command("clear-index")
def clear_index(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete every vector in the configured namespace."""
    from src.nlquery.rag import create_vector_store

    config = load_config()
    if not yes:
        typer.confirm(
            f"Delete all vectors in {config.pinecone_index_name}/{config.pinecone_namespace}?",
            abort=True,
        )
    try:
        asyncio.run(create_vector_store(config).clear_index())
    except NLQueryError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    console.print("[green]Index cleared[/green]")


@app.command()
def version() -> None:
    """Show version information."""
    from src import __version__

    typer.echo(f"nlquery version {__version__}")


if __name__ == "__main__":
    app()
