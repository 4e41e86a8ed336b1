"""Protocol definitions and helpers for pipeline orchestration."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from tessera_schemas.base import BaseSchema
from tessera_schemas.document import WriteBackResult
from tessera_schemas.events import (
    RedactionAppliedData,
    RedactionEvent,
    StageChainedData,
    StageCompletedData,
    StageEvent,
    StageFailedData,
    StageStartedData,
    WriteBackData,
    WriteBackEvent,
)
from tessera_schemas.logs import LogEntry
from tessera_schemas.primitives import (
    LogLevel,
    RunId,
    StageName,
    StageStatus,
    Timestamp,
)
from tessera_schemas.progress import ProgressUpdate
from tessera_schemas.responses import ErrorDetails, ErrorResponse


@runtime_checkable
class LogSinkProtocol(Protocol):
    """Protocol for emitting JSONL log entries."""

    async def emit_log(self, entry: LogEntry) -> None:
        """Emit a log entry."""
        raise NotImplementedError


@runtime_checkable
class ProgressSinkProtocol(Protocol):
    """Protocol for emitting progress updates."""

    async def emit_progress(self, update: ProgressUpdate) -> None:
        """Emit a progress update."""
        raise NotImplementedError


class OrchestrationErrorCode(StrEnum):
    """Categorized error codes for orchestration failures."""

    STAGE_BUSY = "stage_busy"
    MISSING_DEPENDENCY = "missing_dependency"
    INVALID_REQUEST = "invalid_request"
    TRANSPORT_FAILED = "transport_failed"
    SEGMENT_MISMATCH = "segment_mismatch"
    UNKNOWN_RESULT = "unknown_result"


class OrchestrationErrorDetails(BaseSchema):
    """Detailed orchestration error context."""

    stage: StageName | None = Field(None, description="Stage associated with error")
    active_stage: StageName | None = Field(
        None, description="Stage currently holding the pipeline"
    )
    missing: list[str] | None = Field(None, description="Missing prerequisites")
    reason: str | None = Field(None, description="Additional error context")


class OrchestrationErrorInfo(BaseSchema):
    """Structured orchestration error data."""

    code: OrchestrationErrorCode = Field(..., description="Error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: OrchestrationErrorDetails | None = Field(None, description="Error details")

    def to_error_response(self) -> ErrorResponse:
        """Convert orchestration error info to standard error response.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None and self.details.stage is not None:
            details = ErrorDetails(
                field="stage",
                provided=str(self.details.stage),
                valid_options=None,
            )
        code_value = getattr(self.code, "value", self.code)
        return ErrorResponse(
            code=str(code_value), message=self.message, details=details
        )


class OrchestrationError(Exception):
    """Orchestration error with structured details."""

    def __init__(self, info: OrchestrationErrorInfo) -> None:
        """Initialize the orchestration error.

        Args:
            info: Structured orchestration error information.
        """
        super().__init__(info.message)
        self.info = info


def build_stage_started_log(
    timestamp: Timestamp, run_id: RunId, stage: StageName, item_count: int
) -> LogEntry:
    """Build a log entry for stage start.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Stage run identifier.
        stage: Stage being started.
        item_count: Number of items sent to the service.

    Returns:
        LogEntry: Structured stage start log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=StageEvent.STARTED,
        run_id=run_id,
        stage=stage,
        message=f"{stage} started",
        data=StageStartedData(item_count=item_count).model_dump(exclude_none=True),
    )


def build_stage_completed_log(
    timestamp: Timestamp,
    run_id: RunId,
    stage: StageName,
    committed_count: int,
    saw_completion: bool,
) -> LogEntry:
    """Build a log entry for stage completion.

    A stream that ended without a completion event is logged as a warning.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Stage run identifier.
        stage: Completed stage.
        committed_count: Commit events applied during the run.
        saw_completion: Whether a completion event was received.

    Returns:
        LogEntry: Structured stage completion log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO if saw_completion else LogLevel.WARN,
        event=StageEvent.COMPLETED,
        run_id=run_id,
        stage=stage,
        message=(
            f"{stage} completed"
            if saw_completion
            else f"{stage} stream ended without a completion event"
        ),
        data=StageCompletedData(
            status=StageStatus.DONE,
            committed_count=committed_count,
            saw_completion=saw_completion,
        ).model_dump(exclude_none=True),
    )


def build_stage_failed_log(
    timestamp: Timestamp,
    run_id: RunId,
    stage: StageName,
    error_message: str,
    error_code: str | None = None,
    committed_count: int = 0,
) -> LogEntry:
    """Build a log entry for stage failure.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Stage run identifier.
        stage: Failed stage.
        error_message: Failure message.
        error_code: Optional error code.
        committed_count: Commit events preserved from the run.

    Returns:
        LogEntry: Structured stage failure log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.ERROR,
        event=StageEvent.FAILED,
        run_id=run_id,
        stage=stage,
        message=f"{stage} failed",
        data=StageFailedData(
            error_message=error_message,
            error_code=error_code,
            committed_count=committed_count,
        ).model_dump(exclude_none=True),
    )


def build_stage_cancelled_log(
    timestamp: Timestamp, run_id: RunId, stage: StageName
) -> LogEntry:
    """Build a log entry for a user-cancelled stage.

    Returns:
        LogEntry: Structured stage cancellation log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=StageEvent.CANCELLED,
        run_id=run_id,
        stage=stage,
        message=f"{stage} cancelled",
        data=None,
    )


def build_stage_chained_log(
    timestamp: Timestamp, run_id: RunId, stage: StageName, next_stage: StageName
) -> LogEntry:
    """Build a log entry for automatic chaining into the next stage.

    Returns:
        LogEntry: Structured stage chaining log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO,
        event=StageEvent.CHAINED,
        run_id=run_id,
        stage=stage,
        message=f"{stage} chained into {next_stage}",
        data=StageChainedData(next_stage=next_stage).model_dump(exclude_none=True),
    )


def build_stage_skipped_log(
    timestamp: Timestamp,
    run_id: RunId,
    stage: StageName,
    next_stage: StageName,
    reason: str,
) -> LogEntry:
    """Build a log entry for a chained stage that was not started.

    Returns:
        LogEntry: Structured stage skip log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.WARN,
        event=StageEvent.SKIPPED,
        run_id=run_id,
        stage=next_stage,
        message=reason,
        data={"after": str(stage)},
    )


def build_write_back_log(
    timestamp: Timestamp, run_id: RunId, result: WriteBackResult
) -> LogEntry:
    """Build a log entry for a write-back attempt.

    Args:
        timestamp: ISO-8601 timestamp.
        run_id: Identifier of the write-back operation.
        result: Write-back outcome.

    Returns:
        LogEntry: Structured write-back log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.INFO if result.success else LogLevel.WARN,
        event=WriteBackEvent.COMPLETED if result.success else WriteBackEvent.REJECTED,
        run_id=run_id,
        stage=None,
        message=result.message,
        data=WriteBackData(
            lines_overwritten=result.lines_overwritten,
            placeholders_added=result.placeholders_added,
            lines_inserted=result.lines_inserted,
            skipped_lines=result.skipped_lines,
        ).model_dump(exclude_none=True),
    )


def build_redaction_applied_log(
    timestamp: Timestamp,
    entry: LogEntry,
    message_redacted: bool,
    data_redacted: bool,
) -> LogEntry:
    """Build the debug entry recorded after secrets were masked in a log entry.

    Args:
        timestamp: ISO-8601 timestamp.
        entry: Original entry that contained secrets.
        message_redacted: Whether the message was changed.
        data_redacted: Whether the data payload was changed.

    Returns:
        LogEntry: Structured redaction log entry.
    """
    return LogEntry(
        timestamp=timestamp,
        level=LogLevel.DEBUG,
        event=RedactionEvent.APPLIED,
        run_id=entry.run_id,
        stage=StageName(entry.stage) if entry.stage is not None else None,
        message="Secret redaction applied to log entry",
        data=RedactionAppliedData(
            original_event=entry.event,
            message_redacted=message_redacted,
            data_redacted=data_redacted,
        ).model_dump(exclude_none=True),
    )
