"""Primitive types and enums shared across tessera schemas."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated

from pydantic import Field

ISO_8601_PATTERN = (
    r"^\d{4}-\d{2}-\d{2}T"
    r"\d{2}:\d{2}:\d{2}"
    r"(?:\.\d+)?"
    r"(?:Z|[+-]\d{2}:\d{2})$"
)
EVENT_NAME_PATTERN = r"^[a-z][a-z0-9_]*$"

type Timestamp = Annotated[str, Field(pattern=ISO_8601_PATTERN)]
type EventName = Annotated[str, Field(pattern=EVENT_NAME_PATTERN)]
type RunId = Annotated[str, Field(min_length=1)]
type ResultId = Annotated[str, Field(min_length=1)]
type LogicalLineKey = Annotated[str, Field(pattern=r"^\d+$")]

type JsonPrimitive = str | int | float | bool | None
type JsonValue = JsonPrimitive | list["JsonValue"] | dict[str, "JsonValue"]

LINE_PLACEHOLDER = "↩"
INVISIBLE_PLACEHOLDER = "\u00a0"


class StageName(StrEnum):
    """Pipeline stage names."""

    TRANSLATION = "translation"
    GLOSSARY = "glossary"
    STANDARDIZATION_ANALYSIS = "standardization_analysis"
    STANDARDIZATION_APPLY = "standardization_apply"


PIPELINE_STAGE_ORDER = [
    StageName.TRANSLATION,
    StageName.GLOSSARY,
    StageName.STANDARDIZATION_ANALYSIS,
    StageName.STANDARDIZATION_APPLY,
]


class StageStatus(StrEnum):
    """Stage consumer state machine values."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    PLANNING = "planning"
    BATCH_STARTED = "batch_started"
    PROCESSING = "processing"
    BATCH_COMPLETED = "batch_completed"
    COMPLETING = "completing"
    DONE = "done"
    ERRORED = "errored"
    ABORTED = "aborted"


ACTIVE_STAGE_STATUSES = frozenset({
    StageStatus.INITIALIZING,
    StageStatus.PLANNING,
    StageStatus.BATCH_STARTED,
    StageStatus.PROCESSING,
    StageStatus.BATCH_COMPLETED,
    StageStatus.COMPLETING,
})
TERMINAL_STAGE_STATUSES = frozenset({
    StageStatus.DONE,
    StageStatus.ERRORED,
    StageStatus.ABORTED,
})


class LogLevel(StrEnum):
    """Log level values."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class LogSinkType(StrEnum):
    """Supported log sink types."""

    CONSOLE = "console"
    FILE = "file"
    NOOP = "noop"


class PlaceholderType(StrEnum):
    """Filler used for lines inserted while extending a document."""

    EMOJI = "emoji"
    INVISIBLE = "invisible"
    NONE = "none"


class GlossaryMergePolicy(StrEnum):
    """How glossary terms from successive batches are combined."""

    CONCATENATE = "concatenate"
    MERGE_BY_SOURCE_TERM = "merge_by_source_term"


class SegmentMismatchPolicy(StrEnum):
    """How a selection/line-map length mismatch is handled."""

    NULL_MAPPING = "null_mapping"
    ERROR = "error"


class PairingMethod(StrEnum):
    """Strategy used to pair source and translated text."""

    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"
    FULL_TEXT = "full_text"


class DiffOp(StrEnum):
    """Word diff span operations."""

    EQUAL = "equal"
    INSERT = "insert"
    DELETE = "delete"


class ResultViewKind(StrEnum):
    """Mutually exclusive presentation states of a translation result."""

    EDITING = "editing"
    EDITED = "edited"
    UPDATED = "updated"
    PLAIN = "plain"
