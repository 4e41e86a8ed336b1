"""Typed events streamed by the translation service."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import Field, TypeAdapter

from tessera_schemas.base import WireSchema
from tessera_schemas.primitives import JsonValue
from tessera_schemas.results import GlossaryTerm, InconsistentTermPayload


class StreamEventType(StrEnum):
    """Discriminant values of service stream events."""

    INITIALIZATION = "initialization"
    PLANNING = "planning"
    BATCH_START = "batch_start"
    TRANSLATION_START = "translation_start"
    RETRANSLATION_START = "retranslation_start"
    EXTRACTION_START = "extraction_start"
    GLOSSARY_EXTRACTION_START = "glossary_extraction_start"
    TEXT_COMPLETED = "text_completed"
    ITEM_COMPLETED = "item_completed"
    BATCH_COMPLETED = "batch_completed"
    GLOSSARY_BATCH_COMPLETED = "glossary_batch_completed"
    RETRANSLATION_COMPLETED = "retranslation_completed"
    COMPLETION = "completion"
    ERROR = "error"
    RAW_CONTENT = "raw_content"


class _StreamEventBase(WireSchema):
    timestamp: str | None = Field(None, description="Service-side timestamp")
    message: str | None = Field(None, description="Human-readable status")


class InitializationEvent(_StreamEventBase):
    """Stream opened; reports the number of items to process."""

    type: Literal["initialization"] = Field(..., description="Event type")
    total_texts: int | None = Field(None, ge=0, description="Texts to translate")
    total_items: int | None = Field(None, ge=0, description="Items to process")

    @property
    def total(self) -> int | None:
        """Item count regardless of which field the stage uses."""
        return self.total_texts if self.total_texts is not None else self.total_items


class PlanningEvent(_StreamEventBase):
    """Batch plan for the run."""

    type: Literal["planning"] = Field(..., description="Event type")
    total_batches: int = Field(..., ge=0, description="Planned batch count")
    batch_size: int | None = Field(None, ge=1, description="Items per batch")


class BatchStartEvent(_StreamEventBase):
    """A batch started processing."""

    type: Literal["batch_start"] = Field(..., description="Event type")
    batch_number: int = Field(..., ge=0, description="Batch ordinal")
    progress_percent: float | None = Field(
        None, ge=0, description="Overall progress"
    )


class ItemStartEvent(_StreamEventBase):
    """Work on an individual item started."""

    type: Literal[
        "translation_start",
        "retranslation_start",
        "extraction_start",
        "glossary_extraction_start",
    ] = Field(..., description="Event type")
    index: int | None = Field(None, ge=0, description="Item index being processed")


class ItemCompletedEvent(_StreamEventBase):
    """An individual item finished inside the current batch."""

    type: Literal["text_completed", "item_completed"] = Field(
        ..., description="Event type"
    )
    text_number: int | None = Field(None, ge=0, description="Completed text ordinal")
    item_number: int | None = Field(None, ge=0, description="Completed item ordinal")
    total_texts: int | None = Field(None, ge=0, description="Texts in the run")
    total_items: int | None = Field(None, ge=0, description="Items in the run")
    progress_percent: float | None = Field(
        None, ge=0, description="Overall progress"
    )
    translation_preview: str | None = Field(None, description="Translation preview")
    glossary_preview: str | None = Field(None, description="Glossary preview")

    @property
    def number(self) -> int | None:
        """Completed ordinal regardless of which field the stage uses."""
        return self.text_number if self.text_number is not None else self.item_number

    @property
    def preview(self) -> str | None:
        """Preview text regardless of which field the stage uses."""
        return self.translation_preview or self.glossary_preview


class BatchResultItem(WireSchema):
    """One item of a committed batch."""

    original_text: str = Field("", description="Source text")
    translated_text: str = Field("", description="Translated text")
    glossary_terms: list[GlossaryTerm] = Field(
        default_factory=list, description="Terms extracted from this item"
    )
    metadata: dict[str, JsonValue] | None = Field(None, description="Item metadata")


class BatchCompletedEvent(_StreamEventBase):
    """A batch finished; its results are final."""

    type: Literal["batch_completed"] = Field(..., description="Event type")
    batch_id: str | None = Field(None, description="Batch identifier")
    batch_number: int | None = Field(None, ge=0, description="Batch ordinal")
    batch_results: list[BatchResultItem] = Field(
        default_factory=list, description="Results of the batch in input order"
    )
    processing_time: str | float | None = Field(
        None, description="Service processing time"
    )
    cumulative_progress: float | None = Field(
        None, ge=0, description="Overall progress after the batch"
    )


class GlossaryBatchCompletedEvent(_StreamEventBase):
    """A glossary batch finished with its extracted terms."""

    type: Literal["glossary_batch_completed"] = Field(..., description="Event type")
    terms: list[GlossaryTerm] = Field(
        default_factory=list, description="Extracted terms"
    )
    cumulative_progress: float | None = Field(
        None, ge=0, description="Overall progress after the batch"
    )


class UpdatedItem(WireSchema):
    """Re-standardized text pair."""

    original_text: str = Field("", description="Source text")
    translated_text: str = Field(..., description="Standardized translation")


class RetranslationCompletedEvent(_StreamEventBase):
    """One item was re-translated with the chosen standardizations."""

    type: Literal["retranslation_completed"] = Field(..., description="Event type")
    index: int = Field(..., ge=0, description="Index of the updated item")
    updated_item: UpdatedItem | None = Field(None, description="Updated text pair")


class CompletionEvent(_StreamEventBase):
    """The run finished; may carry a final aggregate."""

    type: Literal["completion"] = Field(..., description="Event type")
    total_completed: int | None = Field(None, ge=0, description="Completed items")
    total_texts: int | None = Field(None, ge=0, description="Texts in the run")
    total_items: int | None = Field(None, ge=0, description="Items in the run")
    glossary_terms: list[GlossaryTerm] | None = Field(
        None, description="Final glossary aggregate"
    )
    inconsistent_terms: dict[str, InconsistentTermPayload] | None = Field(
        None, description="Inconsistent-translation clusters keyed by source word"
    )


class ErrorEvent(_StreamEventBase):
    """The service reported a failure mid-stream."""

    type: Literal["error"] = Field(..., description="Event type")
    error: str | None = Field(None, description="Error text")
    details: str | None = Field(None, description="Error details")

    @property
    def error_message(self) -> str:
        """Best available description of the failure."""
        return self.message or self.error or self.details or "Unknown stream error"


class RawContentEvent(_StreamEventBase):
    """Unstructured content relayed by the service."""

    type: Literal["raw_content"] = Field(..., description="Event type")
    content: str = Field("", description="Raw content")


StreamEvent = Annotated[
    InitializationEvent
    | PlanningEvent
    | BatchStartEvent
    | ItemStartEvent
    | ItemCompletedEvent
    | BatchCompletedEvent
    | GlossaryBatchCompletedEvent
    | RetranslationCompletedEvent
    | CompletionEvent
    | ErrorEvent
    | RawContentEvent,
    Field(discriminator="type"),
]

_STREAM_EVENT_ADAPTER: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)
_KNOWN_EVENT_TYPES = frozenset(member.value for member in StreamEventType)


def parse_stream_event(payload: dict[str, JsonValue]) -> StreamEvent | None:
    """Validate a decoded stream payload into a typed event.

    Args:
        payload: Decoded JSON object from the stream.

    Returns:
        StreamEvent | None: Typed event, or None for unknown event types.

    Raises:
        pydantic.ValidationError: If a known event type is malformed.
    """
    if payload.get("type") not in _KNOWN_EVENT_TYPES:
        return None
    return _STREAM_EVENT_ADAPTER.validate_python(payload)
