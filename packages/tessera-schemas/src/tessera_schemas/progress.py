"""Stage state and progress update schemas."""

from __future__ import annotations

from pydantic import Field, model_validator

from tessera_schemas.base import BaseSchema
from tessera_schemas.events import ProgressEvent
from tessera_schemas.primitives import RunId, StageName, StageStatus, Timestamp


class StageState(BaseSchema):
    """Externally observable state of one pipeline stage."""

    stage: StageName = Field(..., description="Stage this state belongs to")
    status: StageStatus = Field(StageStatus.IDLE, description="Consumer status")
    progress_percent: float = Field(0.0, ge=0, le=100, description="Percent complete")
    status_text: str = Field("", description="Human-readable status")
    current_index: int | None = Field(
        None, ge=0, description="Item currently being processed"
    )
    total_items: int | None = Field(None, ge=0, description="Items in the run")
    total_batches: int | None = Field(None, ge=0, description="Planned batches")
    completed_items: int = Field(0, ge=0, description="Items reported complete")
    committed_count: int = Field(0, ge=0, description="Commit events applied")
    error_message: str | None = Field(None, description="Failure message")
    run_id: RunId | None = Field(None, description="Active or last run identifier")
    started_at: Timestamp | None = Field(None, description="Run start timestamp")
    completed_at: Timestamp | None = Field(None, description="Run end timestamp")

    @model_validator(mode="after")
    def _validate_error(self) -> StageState:
        if self.status == StageStatus.ERRORED and not self.error_message:
            raise ValueError("errored stages require an error_message")
        return self


class ProgressUpdate(BaseSchema):
    """Incremental progress update suitable for logs or streaming."""

    run_id: RunId = Field(..., description="Run identifier")
    event: ProgressEvent = Field(..., description="Progress event name")
    timestamp: Timestamp = Field(..., description="Update timestamp")
    stage: StageName = Field(..., description="Stage reporting progress")
    status: StageStatus = Field(..., description="Stage status after the update")
    progress_percent: float = Field(..., ge=0, le=100, description="Percent complete")
    message: str | None = Field(None, description="Optional progress message")
