"""Document selection and write-back schemas."""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator

from tessera_schemas.base import BaseSchema
from tessera_schemas.primitives import (
    INVISIBLE_PLACEHOLDER,
    LINE_PLACEHOLDER,
    PlaceholderType,
)
from tessera_schemas.results import LineNumberMap


class DocumentSelection(BaseSchema):
    """Selected text plus the line map captured when it was selected."""

    text: str = Field(..., description="Selected text")
    line_ranges: LineNumberMap = Field(
        default_factory=dict,
        description="Logical line key to source span, frozen at selection time",
    )
    first_line: int | None = Field(None, ge=1, description="First logical line")
    last_line: int | None = Field(None, ge=1, description="Last logical line")

    @model_validator(mode="after")
    def _validate_bounds(self) -> DocumentSelection:
        if (
            self.first_line is not None
            and self.last_line is not None
            and self.last_line < self.first_line
        ):
            raise ValueError("last_line must not precede first_line")
        return self


def check_single_line_placeholder(value: str | None) -> str | None:
    """Reject placeholders that would occupy more than one physical line.

    Raises:
        ValueError: If the placeholder contains a line break.
    """
    if value is not None and ("\n" in value or "\r" in value):
        raise ValueError("custom_placeholder must not contain line breaks")
    return value


class WriteBackOptions(BaseSchema):
    """Options controlling document extension during write-back."""

    placeholder_type: PlaceholderType = Field(
        PlaceholderType.EMOJI, description="Filler for inserted gap lines"
    )
    custom_placeholder: str | None = Field(
        None, description="Custom filler overriding placeholder_type"
    )

    @field_validator("custom_placeholder")
    @classmethod
    def _single_line_placeholder(cls, value: str | None) -> str | None:
        return check_single_line_placeholder(value)

    @property
    def placeholder(self) -> str:
        """Resolved filler text for one inserted gap line."""
        if self.custom_placeholder:
            return self.custom_placeholder
        if self.placeholder_type == PlaceholderType.INVISIBLE:
            return INVISIBLE_PLACEHOLDER
        if self.placeholder_type == PlaceholderType.NONE:
            return ""
        return LINE_PLACEHOLDER


class WriteBackResult(BaseSchema):
    """Outcome of writing results back into a document."""

    success: bool = Field(..., description="Whether the document was edited")
    message: str = Field(..., min_length=1, description="Summary message")
    lines_overwritten: int = Field(0, ge=0, description="Lines replaced or appended")
    placeholders_added: int = Field(0, ge=0, description="Gap placeholders inserted")
    lines_inserted: int = Field(
        0, ge=0, description="Physical lines added to the document"
    )
    skipped_lines: list[int] = Field(
        default_factory=list, description="Logical lines that could not be written"
    )
    cursor_position: int | None = Field(
        None, ge=0, description="Cursor offset after the last edit"
    )
