"""Segment, translation result and terminology schemas."""

from __future__ import annotations

from pydantic import ConfigDict, Field, model_validator

from tessera_schemas.base import BaseSchema, WireSchema
from tessera_schemas.primitives import (
    JsonValue,
    LogicalLineKey,
    PairingMethod,
    ResultId,
    Timestamp,
)


class LineRange(BaseSchema):
    """Character span of one line in the source document."""

    model_config = ConfigDict(populate_by_name=True)

    start: int = Field(..., ge=0, alias="from", description="Start offset")
    end: int = Field(..., ge=0, alias="to", description="End offset (exclusive)")

    @model_validator(mode="after")
    def _validate_span(self) -> LineRange:
        if self.end < self.start:
            raise ValueError("end must not precede start")
        return self


type LineNumberMap = dict[LogicalLineKey, LineRange]


def logical_line_of(line_numbers: LineNumberMap | None) -> int | None:
    """Return the logical line number recorded in a line map.

    Only the first entry is used; a result maps to exactly one line.

    Args:
        line_numbers: Mapping from logical line key to source span.

    Returns:
        int | None: Positive logical line number, or None when unmapped.
    """
    if not line_numbers:
        return None
    key = next(iter(line_numbers))
    try:
        value = int(key)
    except ValueError:
        return None
    return value if value > 0 else None


class Segment(BaseSchema):
    """One non-empty line of a selection, in selection order."""

    id: str = Field(..., min_length=1, description="Segment identifier")
    original_text: str = Field(..., min_length=1, description="Trimmed line text")
    source_line_number: int | None = Field(
        None, ge=1, description="Logical line number in the source document"
    )
    line_numbers: LineNumberMap | None = Field(
        None, description="Single-entry logical line map, None when unmapped"
    )


class ResultMetadata(BaseSchema):
    """Provenance attached to a translation result."""

    batch_id: str | None = Field(None, description="Service batch identifier")
    batch_number: int | None = Field(None, ge=0, description="Batch ordinal")
    model_used: str | None = Field(None, description="Model identifier")
    text_type: str | None = Field(None, description="Text type hint")
    pairing_method: PairingMethod | None = Field(
        None, description="Pairing strategy for standalone text pairs"
    )
    pair_index: int | None = Field(None, ge=0, description="Standalone pair index")
    extra: dict[str, JsonValue] | None = Field(
        None, description="Free-form metadata returned by the service"
    )


class TranslationResult(BaseSchema):
    """Machine translation of one segment plus its update provenance."""

    id: ResultId = Field(..., description="Opaque result identifier")
    original_text: str = Field(..., description="Source text")
    translated_text: str = Field(..., description="Current machine translation")
    previous_translated_text: str | None = Field(
        None, description="Text shown before the latest standardization"
    )
    is_updated: bool = Field(
        False, description="True once standardization rewrote the translation"
    )
    line_numbers: LineNumberMap | None = Field(
        None, description="Logical line this result writes back to"
    )
    timestamp: Timestamp = Field(..., description="Creation timestamp")
    metadata: ResultMetadata = Field(
        default_factory=ResultMetadata, description="Result provenance"
    )

    @property
    def logical_line_number(self) -> int | None:
        """Logical line number this result targets, if any."""
        return logical_line_of(self.line_numbers)


class GlossaryTerm(WireSchema):
    """Extracted terminology entry."""

    source_term: str = Field(..., description="Term in the source language")
    translated_term: str = Field(..., description="Term in the target language")
    frequency: int | None = Field(None, ge=0, description="Occurrence count")
    context: str | None = Field(None, description="Definition or usage context")

    @model_validator(mode="before")
    @classmethod
    def _accept_wire_aliases(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        if "source_term" not in payload and "original" in payload:
            payload["source_term"] = payload.pop("original")
        if "translated_term" not in payload and "translated" in payload:
            payload["translated_term"] = payload.pop("translated")
        if payload.get("context") is None and payload.get("definition"):
            payload["context"] = payload.pop("definition")
        return payload

    @property
    def is_blank(self) -> bool:
        """True when either side of the term is empty."""
        return not self.source_term.strip() or not self.translated_term.strip()


class InconsistentTermPayload(WireSchema):
    """Wire form of one inconsistent-translation cluster."""

    suggestions: list[str] = Field(
        default_factory=list, description="Candidate translations"
    )
    locations: list[JsonValue] = Field(
        default_factory=list, description="Where each variant occurs"
    )

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_list(cls, data: object) -> object:
        if isinstance(data, list):
            return {"suggestions": data}
        return data


class InconsistentTerm(BaseSchema):
    """Source word translated inconsistently across segments."""

    source_word: str = Field(..., min_length=1, description="Source word")
    suggestions: list[str] = Field(
        ..., min_length=1, description="Candidate translations, preferred first"
    )
    locations: list[JsonValue] = Field(
        default_factory=list, description="Where each variant occurs"
    )


class TextPair(BaseSchema):
    """Original and translated text sent for glossary or standardization."""

    original_text: str = Field(..., description="Source text")
    translated_text: str = Field(..., description="Translated text")
    metadata: ResultMetadata | None = Field(None, description="Pair provenance")


class StandardizationPair(BaseSchema):
    """Chosen resolution for one inconsistent source word."""

    source_word: str = Field(..., min_length=1, description="Source word")
    standardized_translation: str = Field(
        ..., min_length=1, description="Translation to enforce"
    )


class StandardizationItem(BaseSchema):
    """One text pair together with the glossary it must respect."""

    original_text: str = Field(..., description="Source text")
    translated_text: str = Field(..., description="Current translation")
    glossary: list[GlossaryTerm] = Field(
        default_factory=list, description="Glossary terms to check against"
    )
