"""Event taxonomy and structured payloads for pipeline observability."""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from tessera_schemas.base import BaseSchema
from tessera_schemas.primitives import StageName, StageStatus


class StageEvent(StrEnum):
    """Event names for stage lifecycle."""

    STARTED = "stage_started"
    COMPLETED = "stage_completed"
    FAILED = "stage_failed"
    CANCELLED = "stage_cancelled"
    CHAINED = "stage_chained"
    SKIPPED = "stage_skipped"


class WriteBackEvent(StrEnum):
    """Event names for document write-back."""

    COMPLETED = "write_back_completed"
    REJECTED = "write_back_rejected"


class ProgressEvent(StrEnum):
    """Event names for progress updates."""

    STAGE_STARTED = "stage_started"
    STAGE_PROGRESS = "stage_progress"
    STAGE_COMPLETED = "stage_completed"
    STAGE_FAILED = "stage_failed"
    STAGE_CANCELLED = "stage_cancelled"


class StageStartedData(BaseSchema):
    """Payload for stage start events."""

    item_count: int = Field(..., ge=0, description="Items sent to the service")


class StageCompletedData(BaseSchema):
    """Payload for stage completion events."""

    status: StageStatus = Field(..., description="Final stage status")
    committed_count: int = Field(..., ge=0, description="Commit events applied")
    saw_completion: bool = Field(
        ..., description="Whether the stream delivered a completion event"
    )


class StageFailedData(BaseSchema):
    """Payload for stage failure events."""

    error_message: str = Field(..., min_length=1, description="Failure message")
    error_code: str | None = Field(None, description="Error code if known")
    committed_count: int = Field(0, ge=0, description="Commit events preserved")


class StageChainedData(BaseSchema):
    """Payload for automatic stage chaining events."""

    next_stage: StageName = Field(..., description="Stage started automatically")


class WriteBackData(BaseSchema):
    """Payload for write-back events."""

    lines_overwritten: int = Field(..., ge=0, description="Lines written")
    placeholders_added: int = Field(..., ge=0, description="Placeholders inserted")
    lines_inserted: int = Field(..., ge=0, description="Physical lines added")
    skipped_lines: list[int] = Field(
        default_factory=list, description="Logical lines skipped"
    )


class RedactionEvent(StrEnum):
    """Event names for secret redaction."""

    APPLIED = "redaction_applied"


class RedactionAppliedData(BaseSchema):
    """Payload recorded after secrets were masked in a log entry."""

    original_event: str = Field(..., min_length=1, description="Event that was redacted")
    message_redacted: bool = Field(..., description="Whether the message changed")
    data_redacted: bool = Field(..., description="Whether the data payload changed")
