"""CLI entry point for generating one exam from source material.

Usage::

    python scripts/generate_exam.py --input page1.png --input page2.png --grade 7
    python scripts/generate_exam.py --config profile.yaml --input notes.txt \\
        --grade 5 --language en --backend llama --model models/exam.gguf \\
        --output exams/

Exit codes: 0 on success, 1 on failure, 2 when a degraded fallback exam was
stored instead of a generated one.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from examforge.config.profile import GenerationProfile
from examforge.forge.runner import ExamForgeRunner, ExamRunReport
from examforge.generation.orchestrator import GenerationOrchestrator
from examforge.generation.transports import create_transport
from examforge.logger import set_log_level
from examforge.metrics.usage import UsageAggregator
from examforge.schemas.generation import (
    Attachment,
    GenerationRequest,
    GenerationSuccess,
)
from examforge.storage.base import ExamRepository
from examforge.storage.json_store import JSONFileExamRepository
from examforge.storage.memory import InMemoryExamRepository

app = typer.Typer(help="ExamForge exam generation CLI.")
console = Console()

EXIT_FAILURE = 1
EXIT_DEGRADED = 2


def _load_attachment(path: Path) -> Attachment:
    """Read one input file as an attachment.

    Images are sent as binary payloads; everything else is read as UTF-8 text.

    Args:
        path: Input file.

    Returns:
        Attachment for the file.

    Raises:
        typer.BadParameter: If the file cannot be read.
    """
    mime_type, _ = mimetypes.guess_type(path.name)
    try:
        if mime_type is not None and mime_type.startswith("image/"):
            return Attachment(mime_type=mime_type, data=path.read_bytes())
        return Attachment(
            mime_type=mime_type or "text/plain",
            text=path.read_text(encoding="utf-8"),
        )
    except (OSError, UnicodeDecodeError) as exc:
        raise typer.BadParameter(f"Cannot read input {path}: {exc}") from exc


def _build_overrides(backend: str | None, model: str | None) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if backend is not None:
        overrides["transport.backend"] = backend
    if model is not None:
        if (backend or "") == "llama" or model.endswith(".gguf"):
            overrides["transport.model_path"] = Path(model)
        else:
            overrides["transport.model_name"] = model
    return overrides


async def _generate(
    profile: GenerationProfile,
    request: GenerationRequest,
    repository: ExamRepository,
) -> ExamRunReport:
    """Run one generation inside the transport's lifecycle.

    Args:
        profile: Generation configuration.
        request: Generation request.
        repository: Where the exam is stored.

    Returns:
        Runner report.
    """
    transport = create_transport(
        profile.transport, profile.escalation.max_output_tokens
    )
    async with transport:
        orchestrator = GenerationOrchestrator(transport, profile)
        runner = ExamForgeRunner(orchestrator, repository)
        with console.status(f"Generating exam with {transport.model_name}..."):
            return await runner.run(request)


def _print_attempts(report: ExamRunReport) -> None:
    """Print a rich table of the generation attempts.

    Args:
        report: Runner report.
    """
    table = Table(title="Generation Attempts")
    table.add_column("#", justify="right")
    table.add_column("Temperature", justify="right")
    table.add_column("Outcome")
    table.add_column("Duration (ms)", justify="right")
    table.add_column("Error")

    for attempt in report.outcome.attempts:
        table.add_row(
            str(attempt.index),
            f"{attempt.temperature:.2f}",
            attempt.outcome,
            f"{attempt.duration_ms:.0f}",
            attempt.error or "",
        )

    console.print(table)
    console.print(f"Usage: {UsageAggregator.describe(report.outcome.usage)}")


@app.callback(invoke_without_command=True)
def run(
    inputs: list[Path] = typer.Option(
        ..., "--input", exists=True, help="Source file (image or text), repeatable."
    ),
    grade: int = typer.Option(..., "--grade", min=1, max=12, help="Target grade."),
    config: Path | None = typer.Option(
        None, "--config", exists=True, help="YAML generation profile."
    ),
    language: str | None = typer.Option(
        None, "--language", help="Target language (fi, en, sv)."
    ),
    backend: str | None = typer.Option(
        None, "--backend", help="Transport backend: openai or llama."
    ),
    model: str | None = typer.Option(
        None, "--model", help="Model name, or GGUF path for the llama backend."
    ),
    output: Path | None = typer.Option(
        None, "--output", help="Directory for stored exam JSON files."
    ),
    log_level: str = typer.Option(
        "INFO", "--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)."
    ),
) -> None:
    """Generate, validate and store one exam."""
    # ---- Configure logging ----
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        console.print(f"[red]Invalid log level: {log_level}[/red]")
        raise SystemExit(EXIT_FAILURE)
    set_log_level(log_level.upper())

    if backend is not None and backend not in ("openai", "llama"):
        console.print(
            f"[red]Unsupported backend: {backend}. Use 'openai' or 'llama'.[/red]"
        )
        raise SystemExit(EXIT_FAILURE)

    # ---- Eager validation ----
    try:
        profile = (
            GenerationProfile.from_yaml(config) if config else GenerationProfile()
        )
        profile = profile.with_overrides(_build_overrides(backend, model))
        if language is not None:
            profile = profile.for_language(language)
    except Exception as exc:
        console.print(f"[red]Invalid config: {exc}[/red]")
        raise SystemExit(EXIT_FAILURE) from exc

    try:
        attachments = tuple(_load_attachment(path) for path in inputs)
    except typer.BadParameter as exc:
        console.print(f"[red]{exc.message}[/red]")
        raise SystemExit(EXIT_FAILURE) from exc

    try:
        request = GenerationRequest(
            attachments=attachments, grade=grade, language=profile.language
        )
    except Exception as exc:
        console.print(f"[red]Invalid request: {exc}[/red]")
        raise SystemExit(EXIT_FAILURE) from exc

    repository: ExamRepository = (
        JSONFileExamRepository(output)
        if output is not None
        else InMemoryExamRepository()
    )

    # ---- Generate ----
    console.print(
        f"[bold]ExamForge[/bold] grade {grade}, language {profile.language}, "
        f"{len(attachments)} input(s), backend {profile.transport.backend}"
    )
    try:
        report = asyncio.run(_generate(profile, request, repository))
    except Exception as exc:
        console.print(f"[red]Generation failed: {exc}[/red]")
        raise SystemExit(EXIT_FAILURE) from exc

    _print_attempts(report)

    # ---- Report ----
    outcome = report.outcome
    if isinstance(outcome, GenerationSuccess):
        console.print(
            f"[green]Exam {report.exam_id} stored: {len(outcome.questions)} "
            f"question(s), score {outcome.validation.score}[/green]"
        )
        return

    if report.degraded:
        console.print(
            f"[yellow]Model output unusable ({outcome.reason}); "
            f"placeholder exam {report.exam_id} stored for manual editing.[/yellow]"
        )
        raise SystemExit(EXIT_DEGRADED)

    console.print(f"[red]Generation failed ({outcome.phase}): {outcome.reason}[/red]")
    if outcome.validation is not None:
        for error in outcome.validation.errors:
            console.print(f"  - {error}")
    raise SystemExit(EXIT_FAILURE)


if __name__ == "__main__":
    app()
