"""CLI entry point - thin adapter over tessera-core."""

from __future__ import annotations

import asyncio
import sys
import tomllib
from pathlib import Path

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
)
from rich.table import Table
from rich.text import Text

from tessera_core import __version__ as VERSION
from tessera_core.diff import diff_words, summarize_changes
from tessera_core.orchestrator import PipelineOrchestrator
from tessera_core.ports.orchestrator import (
    LogSinkProtocol,
    OrchestrationError,
    ProgressSinkProtocol,
)
from tessera_core.ports.transport import StreamTransportProtocol, TransportError
from tessera_core.settings import ServiceSettings, get_settings
from tessera_core.util.logging import configure_logging
from tessera_io.document import TextFileDocument
from tessera_io.storage.log_sink import build_log_sink
from tessera_io.storage.progress_sink import (
    CompositeProgressSink,
    FileSystemProgressSink,
)
from tessera_io.transport import HttpStreamTransport
from tessera_schemas.config import PipelineConfig
from tessera_schemas.document import DocumentSelection, WriteBackResult
from tessera_schemas.events import ProgressEvent
from tessera_schemas.pipeline import PipelineSnapshot
from tessera_schemas.primitives import DiffOp, JsonValue, StageName, StageStatus
from tessera_schemas.progress import ProgressUpdate
from tessera_schemas.redaction import Redactor
from tessera_schemas.responses import ErrorResponse
from tessera_schemas.validation import validate_pipeline_config

CONFIG_OPTION = typer.Option(
    Path("tessera.toml"),
    "--config",
    "-c",
    help="Path to tessera TOML config",
)
LINES_OPTION = typer.Option(
    ..., "--lines", "-l", help="Logical line range to translate, e.g. 3-10"
)
TARGET_OPTION = typer.Option(
    None, "--target", "-t", help="Document receiving the write-back (default: SOURCE)"
)
WRITE_BACK_OPTION = typer.Option(
    False, "--write-back", help="Write translations back line by line"
)
VERBOSITY_OPTION = typer.Option(
    "info", "--verbosity", "-v", help="Console log verbosity (quiet|info|debug)"
)
PROGRESS_LOG_OPTION = typer.Option(
    None, "--progress-log", help="Append progress updates to a JSONL file"
)
LOG_FILE_OPTION = typer.Option(
    None, "--log-file", help="Write debug-level logs to a file"
)

_DIFF_STYLES: dict[str, str] = {
    DiffOp.INSERT: "bold green",
    DiffOp.DELETE: "strike red",
    DiffOp.EQUAL: "",
}

app = typer.Typer(
    help="Streaming translation pipeline with line-preserving write-back",
    no_args_is_help=True,
)


class _ConfigError(ValueError):
    """Raised when the config file cannot be read."""


@app.callback()
def main() -> None:
    """Tessera CLI."""


@app.command()
def version() -> None:
    """Display version information."""
    rprint(f"[bold]tessera[/bold] v{VERSION}")


@app.command()
def run(
    source: Path = typer.Argument(..., help="Source text file"),
    lines: str = LINES_OPTION,
    target: Path | None = TARGET_OPTION,
    config_path: Path = CONFIG_OPTION,
    write_back: bool = WRITE_BACK_OPTION,
    verbosity: str = VERBOSITY_OPTION,
    progress_log: Path | None = PROGRESS_LOG_OPTION,
    log_file: Path | None = LOG_FILE_OPTION,
) -> None:
    """Translate a line range, chain configured stages and optionally write back.

    Raises:
        typer.Exit: When configuration, transport or a stage fails.
    """
    configure_logging(verbosity, log_file)
    console = Console()
    try:
        config = _load_pipeline_config(config_path)
        first_line, last_line = _parse_line_range(lines)
        settings = get_settings()
        if not source.exists():
            raise _ConfigError(f"Source not found: {source}")
        document = TextFileDocument(source)
        selection = document.selection(first_line, last_line)
        log_sink = _build_command_log_sink(config, settings)
        transport = _build_transport(config, settings)
        interactive = _should_render_progress()
        progress = _build_progress(Console(stderr=True)) if interactive else None
        orchestrator = PipelineOrchestrator(
            transport,
            config,
            log_sink=log_sink,
            progress_sink=_build_progress_sink(progress, progress_log),
        )
        target_document: TextFileDocument | None = None
        if write_back:
            target_document = document
            if target is not None and target != source:
                target_document = TextFileDocument(target)
        if progress is not None:
            with progress:
                snapshot, result = asyncio.run(
                    _run_async(orchestrator, selection, target_document)
                )
        else:
            snapshot, result = asyncio.run(
                _run_async(orchestrator, selection, target_document)
            )
    except Exception as exc:
        _render_error(_error_from_exception(exc), console)
        raise typer.Exit(code=1) from None

    _render_results(snapshot, console)
    if target_document is not None and result is not None:
        if result.success:
            target_document.save()
            console.print(f"[green]{result.message}[/green]")
        else:
            console.print(f"[yellow]{result.message}[/yellow]")
    failed = [
        stage
        for stage, state in snapshot.stages.items()
        if state.status == StageStatus.ERRORED
    ]
    if failed:
        for stage in failed:
            message = snapshot.stages[stage].error_message or "Unknown error"
            console.print(f"[red]{stage} failed:[/red] {message}")
        raise typer.Exit(code=1)


@app.command()
def diff(
    old: str = typer.Argument(..., help="Previous text"),
    new: str = typer.Argument(..., help="Current text"),
) -> None:
    """Show a word-level diff between two texts."""
    console = Console()
    rendered = Text()
    for span in diff_words(old, new):
        rendered.append(span.text, style=_DIFF_STYLES[span.op])
    console.print(rendered)
    stats = summarize_changes(old, new)
    console.print(
        f"+{stats.inserted_words} -{stats.deleted_words} "
        f"={stats.unchanged_words} (similarity {stats.similarity:.0%})"
    )


async def _run_async(
    orchestrator: PipelineOrchestrator,
    selection: DocumentSelection,
    target_document: TextFileDocument | None,
) -> tuple[PipelineSnapshot, WriteBackResult | None]:
    await orchestrator.start_translation(selection)
    result = None
    if target_document is not None:
        result = await orchestrator.write_back(target_document)
    return orchestrator.snapshot(), result


class _ProgressReporter(ProgressSinkProtocol):
    def __init__(self, progress: Progress) -> None:
        self._progress = progress
        self._tasks: dict[str, TaskID] = {}

    async def emit_progress(self, update: ProgressUpdate) -> None:
        stage = str(update.stage)
        task_id = self._tasks.get(stage)
        if task_id is None:
            task_id = self._progress.add_task(stage, total=100)
            self._tasks[stage] = task_id
        description = f"{stage}: {update.message}" if update.message else stage
        self._progress.update(
            task_id, completed=update.progress_percent, description=description
        )
        if update.event == ProgressEvent.STAGE_FAILED:
            self._progress.console.print(f"[red]{stage} failed[/red]")
        elif update.event == ProgressEvent.STAGE_CANCELLED:
            self._progress.console.print(f"[yellow]{stage} stopped[/yellow]")


def _should_render_progress() -> bool:
    return sys.stderr.isatty()


def _build_progress_sink(
    progress: Progress | None, progress_log: Path | None
) -> ProgressSinkProtocol | None:
    sinks: list[ProgressSinkProtocol] = []
    if progress is not None:
        sinks.append(_ProgressReporter(progress))
    if progress_log is not None:
        sinks.append(FileSystemProgressSink(progress_log))
    if not sinks:
        return None
    if len(sinks) == 1:
        return sinks[0]
    return CompositeProgressSink(sinks)


def _build_progress(console: Console) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
    )


def _render_results(snapshot: PipelineSnapshot, console: Console) -> None:
    table = Table(title="Translation results")
    table.add_column("Line", justify="right")
    table.add_column("Original")
    table.add_column("Translation")
    for result in snapshot.results:
        line = result.logical_line_number
        table.add_row(
            str(line) if line is not None else "-",
            result.original_text,
            result.translated_text,
        )
    console.print(table)
    if snapshot.glossary_terms:
        glossary = Table(title="Glossary")
        glossary.add_column("Source")
        glossary.add_column("Translation")
        for term in snapshot.glossary_terms:
            glossary.add_row(term.source_term, term.translated_term)
        console.print(glossary)
    if snapshot.inconsistent_terms:
        inconsistencies = Table(title="Inconsistent terms")
        inconsistencies.add_column("Source")
        inconsistencies.add_column("Translations")
        for term in snapshot.inconsistent_terms:
            inconsistencies.add_row(term.source_word, ", ".join(term.suggestions))
        console.print(inconsistencies)


def _render_error(error: ErrorResponse, console: Console) -> None:
    console.print(f"[red]Error ({error.code}):[/red] {error.message}")


def _parse_line_range(value: str) -> tuple[int, int]:
    first, _, last = value.partition("-")
    try:
        first_line = int(first)
        last_line = int(last) if last else first_line
    except ValueError as exc:
        raise _ConfigError(f"Invalid line range: {value!r}") from exc
    if first_line < 1 or last_line < first_line:
        raise _ConfigError(f"Invalid line range: {value!r}")
    return first_line, last_line


def _load_pipeline_config(config_path: Path) -> PipelineConfig:
    _load_dotenv(config_path)
    if not config_path.exists():
        return PipelineConfig()
    try:
        with open(config_path, "rb") as handle:
            payload: dict[str, JsonValue] = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise _ConfigError(f"Failed to read config: {exc}") from exc
    return validate_pipeline_config(payload)


def _load_dotenv(config_path: Path) -> None:
    env_path = config_path.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)


def _api_token(settings: ServiceSettings) -> str | None:
    if settings.api_token is None:
        return None
    return settings.api_token.get_secret_value() or None


def _build_transport(
    config: PipelineConfig, settings: ServiceSettings
) -> StreamTransportProtocol:
    service = config.service
    return HttpStreamTransport(
        service.base_url or settings.service_url,
        token=_api_token(settings),
        timeout_s=service.timeout_s or settings.timeout_s,
        paths={StageName(stage): path for stage, path in service.paths.items()},
    )


def _build_command_log_sink(
    config: PipelineConfig, settings: ServiceSettings
) -> LogSinkProtocol:
    token = _api_token(settings)
    redactor = Redactor([token] if token else [])
    return build_log_sink(config.logging, redactor=redactor)


def _error_from_exception(exc: Exception) -> ErrorResponse:
    if isinstance(exc, OrchestrationError | TransportError):
        return exc.info.to_error_response()
    if isinstance(exc, ValidationError):
        message = "Config validation failed"
        errors = exc.errors()
        if errors:
            first = errors[0]
            loc = first.get("loc", [])
            label = ".".join(str(part) for part in loc) if loc else ""
            detail = first.get("msg", "")
            if label and detail:
                message = f"Config validation failed: {label} - {detail}"
            elif detail:
                message = f"Config validation failed: {detail}"
        return ErrorResponse(code="validation_error", message=message, details=None)
    if isinstance(exc, _ConfigError):
        return ErrorResponse(code="config_error", message=str(exc), details=None)
    if isinstance(exc, ValueError):
        return ErrorResponse(
            code="invalid_argument",
            message=str(exc) or "Invalid argument",
            details=None,
        )
    return ErrorResponse(
        code="runtime_error", message=str(exc) or type(exc).__name__, details=None
    )
