"""Request payloads sent to the translation service."""

from __future__ import annotations

from pydantic import Field, model_validator

from tessera_schemas.base import BaseSchema
from tessera_schemas.results import (
    StandardizationItem,
    StandardizationPair,
    TextPair,
)

MAX_BATCH_SIZE = 10
MAX_GLOSSARY_BATCH_SIZE = 5
DEFAULT_APPLY_RULES = (
    "Apply standardization consistently while maintaining natural translation flow"
)


class TranslationRequest(BaseSchema):
    """Request body for the translation stream."""

    texts: list[str] = Field(..., min_length=1, description="Segment texts")
    target_language: str = Field(..., min_length=1, description="Target language")
    text_type: str | None = Field(None, description="Text type hint")
    model_name: str | None = Field(None, description="Model identifier")
    batch_size: int = Field(
        2, ge=1, le=MAX_BATCH_SIZE, description="Segments per service batch"
    )
    user_rules: str | None = Field(None, description="Free-text instructions")

    @model_validator(mode="after")
    def _validate_texts(self) -> TranslationRequest:
        if any(not text.strip() for text in self.texts):
            raise ValueError("texts must not contain blank entries")
        return self


class GlossaryExtractionRequest(BaseSchema):
    """Request body for the glossary extraction stream."""

    items: list[TextPair] = Field(..., min_length=1, description="Text pairs")
    model_name: str | None = Field(None, description="Model identifier")
    batch_size: int = Field(
        MAX_GLOSSARY_BATCH_SIZE,
        ge=1,
        le=MAX_GLOSSARY_BATCH_SIZE,
        description="Pairs per service batch",
    )

    @model_validator(mode="after")
    def _validate_items(self) -> GlossaryExtractionRequest:
        for item in self.items:
            if not item.original_text.strip() or not item.translated_text.strip():
                raise ValueError(
                    "items must have non-empty original_text and translated_text"
                )
        return self


class StandardizationAnalysisRequest(BaseSchema):
    """Request body for the standardization analysis call."""

    items: list[StandardizationItem] = Field(
        ..., min_length=1, description="Text pairs with glossary"
    )

    @model_validator(mode="after")
    def _validate_items(self) -> StandardizationAnalysisRequest:
        _validate_standardization_items(self.items)
        return self


class ApplyStandardizationRequest(BaseSchema):
    """Request body for the standardization apply stream."""

    items: list[StandardizationItem] = Field(
        ..., min_length=1, description="Text pairs with glossary"
    )
    standardization_pairs: list[StandardizationPair] = Field(
        ..., min_length=1, description="Resolutions to enforce"
    )
    model_name: str | None = Field(None, description="Model identifier")
    user_rules: str = Field(
        DEFAULT_APPLY_RULES, min_length=1, description="Free-text instructions"
    )

    @model_validator(mode="after")
    def _validate_items(self) -> ApplyStandardizationRequest:
        _validate_standardization_items(self.items)
        return self


type StageRequest = (
    TranslationRequest
    | GlossaryExtractionRequest
    | StandardizationAnalysisRequest
    | ApplyStandardizationRequest
)


def _validate_standardization_items(items: list[StandardizationItem]) -> None:
    for item in items:
        if not item.original_text.strip() or not item.translated_text.strip():
            raise ValueError(
                "items must have non-empty original_text and translated_text"
            )
        if any(term.is_blank for term in item.glossary):
            raise ValueError(
                "glossary terms must have non-empty source_term and translated_term"
            )
