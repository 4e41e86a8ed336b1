"""Configuration schemas for pipeline runs."""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator

from tessera_schemas.base import BaseSchema
from tessera_schemas.document import check_single_line_placeholder
from tessera_schemas.primitives import (
    GlossaryMergePolicy,
    LogLevel,
    LogSinkType,
    PlaceholderType,
    SegmentMismatchPolicy,
    StageName,
)
from tessera_schemas.requests import MAX_BATCH_SIZE

DEFAULT_STAGE_PATHS: dict[StageName, str] = {
    StageName.TRANSLATION: "/translate",
    StageName.GLOSSARY: "/glossary/extract/stream",
    StageName.STANDARDIZATION_ANALYSIS: "/standardize/analyze",
    StageName.STANDARDIZATION_APPLY: "/standardize/apply/stream",
}


class LogSinkConfig(BaseSchema):
    """Configuration for a single log sink."""

    type: LogSinkType = Field(..., description="Log sink type (console|file|noop)")
    path: str | None = Field(None, description="JSONL file path for file sinks")
    min_level: LogLevel = Field(
        LogLevel.DEBUG, description="Lowest level forwarded to this sink"
    )

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, value: object) -> LogSinkType:
        if isinstance(value, LogSinkType):
            return value
        if isinstance(value, str):
            return LogSinkType(value)
        return value  # type: ignore[return-value]

    @field_validator("min_level", mode="before")
    @classmethod
    def _coerce_level(cls, value: object) -> LogLevel:
        if isinstance(value, LogLevel):
            return value
        if isinstance(value, str):
            return LogLevel(value)
        return value  # type: ignore[return-value]

    @model_validator(mode="after")
    def _validate_path(self) -> LogSinkConfig:
        if self.type == LogSinkType.FILE and not self.path:
            raise ValueError("file log sinks require a path")
        return self


class LoggingConfig(BaseSchema):
    """Logging configuration for pipeline runs and CLI commands."""

    sinks: list[LogSinkConfig] = Field(
        default_factory=lambda: [LogSinkConfig(type=LogSinkType.NOOP)],
        min_length=1,
        description="Log sinks to enable",
    )

    @model_validator(mode="after")
    def validate_sink_types(self) -> LoggingConfig:
        """Ensure log sink types are unique.

        Returns:
            LoggingConfig: Validated logging configuration.

        Raises:
            ValueError: If sink types are duplicated.
        """
        sink_types = [sink.type for sink in self.sinks]
        if len(set(sink_types)) != len(sink_types):
            raise ValueError("log sinks must not contain duplicates")
        return self


class TranslationConfig(BaseSchema):
    """Parameters sent with translation, glossary and apply requests."""

    target_language: str = Field("english", min_length=1, description="Target language")
    text_type: str = Field("commentary", min_length=1, description="Text type hint")
    model_name: str = Field("claude", min_length=1, description="Model identifier")
    batch_size: int = Field(
        2, ge=1, le=MAX_BATCH_SIZE, description="Segments per service batch"
    )
    user_rules: str | None = Field(
        "do translation normally", description="Free-text instructions"
    )


class WriteBackConfig(BaseSchema):
    """Defaults for document write-back."""

    placeholder_type: PlaceholderType = Field(
        PlaceholderType.EMOJI, description="Filler for inserted gap lines"
    )
    custom_placeholder: str | None = Field(
        None, description="Custom filler overriding placeholder_type"
    )

    @field_validator("placeholder_type", mode="before")
    @classmethod
    def _coerce_placeholder(cls, value: object) -> PlaceholderType:
        if isinstance(value, PlaceholderType):
            return value
        if isinstance(value, str):
            return PlaceholderType(value)
        return value  # type: ignore[return-value]

    @field_validator("custom_placeholder")
    @classmethod
    def _single_line_placeholder(cls, value: str | None) -> str | None:
        return check_single_line_placeholder(value)


class ServiceEndpointConfig(BaseSchema):
    """Location of the translation service."""

    base_url: str | None = Field(
        None, description="Service base URL; falls back to TESSERA_SERVICE_URL"
    )
    timeout_s: float | None = Field(
        None, gt=0, description="Request timeout; falls back to TESSERA_TIMEOUT_S"
    )
    paths: dict[StageName, str] = Field(
        default_factory=lambda: dict(DEFAULT_STAGE_PATHS),
        description="Endpoint path per stage",
    )

    @field_validator("paths", mode="after")
    @classmethod
    def _fill_paths(cls, value: dict[StageName, str]) -> dict[StageName, str]:
        return {**DEFAULT_STAGE_PATHS, **value}


class PipelineConfig(BaseSchema):
    """Top-level configuration for a tessera pipeline."""

    translation: TranslationConfig = Field(
        default_factory=TranslationConfig, description="Request parameters"
    )
    auto_extract_glossary: bool = Field(
        False, description="Chain glossary extraction after translation"
    )
    glossary_merge: GlossaryMergePolicy = Field(
        GlossaryMergePolicy.CONCATENATE,
        description="How glossary terms from successive batches combine",
    )
    segment_mismatch: SegmentMismatchPolicy = Field(
        SegmentMismatchPolicy.NULL_MAPPING,
        description="Handling of selection/line-map length mismatches",
    )
    write_back: WriteBackConfig = Field(
        default_factory=WriteBackConfig, description="Write-back defaults"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Structured log sinks"
    )
    service: ServiceEndpointConfig = Field(
        default_factory=ServiceEndpointConfig, description="Service endpoint"
    )
