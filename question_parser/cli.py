"""
CLI Interface
=============
Command-line interface for the question extractor.

Usage:
    python -m question_parser extract <pdf_path> [options]
    python -m question_parser batch <directory> [options]
    python -m question_parser validate <json_path>
    python -m question_parser info <pdf_path>
    python -m question_parser serve [options]
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from . import __version__
from .extractor import ExtractorConfig, QuestionExtractor
from .models import ExtractionResult
from .text_extractor import TextExtractor
from .validator import ValidationEngine

console = Console()

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.group()
@click.version_option(version=__version__, prog_name="question-parser")
def cli():
    """Exam Question Extractor — numbered questions out of PDF papers."""
    pass


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output", "-o",
    default=None,
    help="Write the JSON result to this file",
)
@click.option(
    "--line-breaks",
    is_flag=True,
    default=False,
    help="Keep PDF line breaks so several questions per page can be found",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(LOG_LEVELS),
    help="Logging level",
)
@click.option(
    "--log-file",
    default=None,
    help="Path to log file",
)
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
def extract(
    pdf_path: str,
    output: str,
    line_breaks: bool,
    log_level: str,
    log_file: str,
    json_output: bool,
):
    """Extract the questions of a single PDF."""

    if json_output:
        # Keep stdout clean for the JSON document
        log_level = "ERROR"

    config = ExtractorConfig(
        preserve_line_breaks=line_breaks,
        log_level=log_level,
        log_file=log_file,
    )

    if not json_output:
        console.print()
        console.print(
            Panel.fit(
                f"[bold cyan]Question Extractor v{__version__}[/]\n"
                f"[dim]Extracting: {os.path.basename(pdf_path)}[/]",
                border_style="cyan",
            )
        )
        console.print()

    try:
        extractor = QuestionExtractor(config)

        if json_output:
            result = extractor.extract_result(pdf_path)
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                TimeElapsedColumn(),
                console=console,
            ) as progress:
                progress.add_task("Extracting questions...", total=None)
                result = extractor.extract_result(pdf_path)

    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    except RuntimeError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    data = result.model_dump(mode="json")

    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        with open(output, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    if json_output:
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return

    _display_questions(result)
    _display_validation_table(data["validation"])

    if output:
        console.print(f"[dim]Saved JSON output: {output}[/]")
        console.print()


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@click.option("--output", "-o", default=None, help="Directory for JSON results")
@click.option("--line-breaks", is_flag=True, default=False, help="Keep PDF line breaks")
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(LOG_LEVELS),
    help="Logging level",
)
@click.option(
    "--parallel", "-j",
    default=4,
    type=click.IntRange(min=1),
    help="Number of PDFs extracted concurrently",
)
def batch(
    directory: str,
    output: str,
    line_breaks: bool,
    log_level: str,
    parallel: int,
):
    """Extract the questions of every PDF in a directory."""

    pdf_files = sorted(Path(directory).glob("*.pdf"))

    if not pdf_files:
        console.print(f"[yellow]No PDF files found in: {directory}[/]")
        return

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Batch Question Extractor[/]\n"
            f"[dim]Found {len(pdf_files)} PDFs in: {directory}[/]",
            border_style="cyan",
        )
    )
    console.print()

    extractor = QuestionExtractor(ExtractorConfig(
        preserve_line_breaks=line_breaks,
        log_level=log_level,
    ))

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task("Processing PDFs...", total=len(pdf_files))
        results, errors = asyncio.run(
            _extract_all(extractor, pdf_files, parallel, lambda: progress.advance(task))
        )

    if output:
        output_dir = Path(output)
        output_dir.mkdir(parents=True, exist_ok=True)
        for name, result in results:
            out_file = output_dir / f"{Path(name).stem}_questions.json"
            with open(out_file, "w", encoding="utf-8") as f:
                json.dump(result.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

    _display_batch_summary(results, errors)


async def _extract_all(extractor, pdf_files, parallel, on_done):
    """Extract PDFs concurrently, at most ``parallel`` at a time."""
    semaphore = asyncio.Semaphore(parallel)

    async def process_pdf(pdf_file: Path):
        async with semaphore:
            try:
                result = await extractor.extract_result_async(str(pdf_file))
                return pdf_file.name, result, None
            except (FileNotFoundError, RuntimeError) as e:
                return pdf_file.name, None, str(e)
            finally:
                on_done()

    outcomes = await asyncio.gather(*(process_pdf(p) for p in pdf_files))

    results = [(name, result) for name, result, error in outcomes if error is None]
    errors = [(name, error) for name, result, error in outcomes if error is not None]
    return results, errors


@cli.command()
@click.argument("json_path", type=click.Path(exists=True, dir_okay=False))
def validate(json_path: str):
    """Re-validate the questions of a saved extraction result."""

    with open(json_path, "r", encoding="utf-8") as f:
        data = json.load(f)

    try:
        result = ExtractionResult.model_validate(data)
    except ValidationError as e:
        console.print(f"[red]Not an extraction result:[/] {e}")
        sys.exit(1)

    report = ValidationEngine().validate(result.questions, result.strategy)

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Validation Report[/]\n"
            f"[dim]File: {json_path}[/]",
            border_style="cyan",
        )
    )
    console.print()

    _display_validation_table(report.model_dump(mode="json"))


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP extraction service."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Question Extractor Service[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug)


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
def info(pdf_path: str):
    """Display PDF file information."""

    try:
        doc_info = TextExtractor().get_document_info(pdf_path)
    except (FileNotFoundError, RuntimeError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    console.print()
    table = Table(title="PDF Information", border_style="cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value")

    table.add_row("File", os.path.basename(pdf_path))
    table.add_row("Pages", str(doc_info["page_count"]))
    table.add_row(
        "File Size",
        f"{os.path.getsize(pdf_path) / 1024 / 1024:.2f} MB",
    )

    metadata = doc_info["metadata"]
    for key in ["title", "author", "subject", "creator", "producer"]:
        val = metadata.get(key, "")
        if val:
            table.add_row(key.title(), val)

    console.print(table)
    console.print()


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_questions(result):
    """Display extracted questions in a table."""
    table = Table(
        title=f"Questions ({result.strategy.value} strategy)",
        border_style="cyan",
    )
    table.add_column("#", justify="right", style="bold")
    table.add_column("Page", justify="right")
    table.add_column("Marks", justify="right")
    table.add_column("Question")

    for q in result.questions:
        text = q.question_text
        if len(text) > 80:
            text = text[:77] + "..."
        table.add_row(
            str(q.question_number),
            str(q.page_number),
            str(q.max_marks),
            text,
        )

    console.print(table)
    console.print()

    doc = result.document
    console.print(
        f"[dim]Extractor v{result.parser_version} | "
        f"Pages: {doc.total_pages} | "
        f"Questions: {result.question_count} | "
        f"Timestamp: {result.extraction_timestamp}[/]"
    )
    console.print()


def _display_validation_table(validation: dict):
    """Display validation report as a rich table."""
    table = Table(title="Validation Report", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    def status_icon(count, threshold=0):
        if count <= threshold:
            return "[green]✓[/]"
        return "[red]✗[/]"

    total = validation.get("total_questions", 0)
    table.add_row(
        "Total Questions",
        str(total),
        "[green]✓[/]" if total > 0 else "[red]✗[/]",
    )

    strategy = validation.get("strategy") or "-"
    table.add_row(
        "Strategy",
        strategy,
        "[green]✓[/]" if strategy == "pattern" else "[yellow]⚠[/]",
    )

    missing = validation.get("missing_question_numbers", [])
    table.add_row("Missing Question Numbers", str(len(missing)), status_icon(len(missing)))

    dupes = validation.get("duplicate_question_numbers", [])
    table.add_row("Duplicate Question Numbers", str(len(dupes)), status_icon(len(dupes)))

    overlaps = validation.get("overlapping_questions", [])
    table.add_row("Overlapping Questions", str(len(overlaps)), status_icon(len(overlaps)))

    pages = validation.get("pages_with_questions", [])
    table.add_row("Pages With Questions", str(len(pages)), "")

    default_marks = validation.get("questions_with_default_marks", [])
    table.add_row("Questions With Default Marks", str(len(default_marks)), "")

    truncated = validation.get("truncated_questions", [])
    table.add_row("Truncated Questions", str(len(truncated)), status_icon(len(truncated)))

    table.add_row("Total Marks", str(validation.get("total_marks", 0)), "")

    console.print(table)
    console.print()


def _display_batch_summary(results, errors):
    """Display batch processing summary."""
    console.print()

    table = Table(title="Batch Processing Summary", border_style="cyan")
    table.add_column("PDF", style="bold")
    table.add_column("Questions", justify="right")
    table.add_column("Strategy")
    table.add_column("Gaps", justify="right")
    table.add_column("Status", justify="center")

    total_questions = 0

    for name, result in results:
        total_questions += result.question_count
        gaps = len(result.validation.missing_question_numbers)
        status = "[green]✓[/]" if result.validation.sequence_complete else "[yellow]⚠[/]"
        table.add_row(
            name,
            str(result.question_count),
            result.strategy.value,
            str(gaps),
            status,
        )

    for name, error in errors:
        table.add_row(name, "-", "-", "-", "[red]✗ FAILED[/]")

    console.print(table)
    console.print()
    console.print(
        f"[bold]Total:[/] {total_questions} questions from "
        f"{len(results)} PDFs, {len(errors)} failures"
    )
    console.print()


if __name__ == "__main__":
    cli()
