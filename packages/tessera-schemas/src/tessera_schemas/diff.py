"""Word diff and result presentation schemas."""

from __future__ import annotations

from pydantic import Field

from tessera_schemas.base import BaseSchema
from tessera_schemas.primitives import DiffOp, ResultId, ResultViewKind


class DiffSpan(BaseSchema):
    """Contiguous run of text sharing one diff operation."""

    op: DiffOp = Field(..., description="equal, insert or delete")
    text: str = Field(..., description="Span text including whitespace")


class ChangeStats(BaseSchema):
    """Size of the change between two texts, counted in words."""

    inserted_words: int = Field(..., ge=0, description="Words only in the new text")
    deleted_words: int = Field(..., ge=0, description="Words only in the old text")
    unchanged_words: int = Field(..., ge=0, description="Words in both texts")
    similarity: float = Field(..., ge=0, le=1, description="Word-level ratio")


class ResultView(BaseSchema):
    """How one translation result should currently be presented."""

    result_id: ResultId = Field(..., description="Result identifier")
    kind: ResultViewKind = Field(..., description="Presentation state")
    text: str = Field(..., description="Text to show or edit")
    spans: list[DiffSpan] | None = Field(
        None, description="Diff spans for edited and updated views"
    )
