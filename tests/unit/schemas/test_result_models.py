"""Unit tests for result and document schemas."""

import pytest
from pydantic import ValidationError

from tessera_schemas.document import DocumentSelection, WriteBackOptions
from tessera_schemas.primitives import (
    INVISIBLE_PLACEHOLDER,
    LINE_PLACEHOLDER,
    PlaceholderType,
    StageName,
    StageStatus,
)
from tessera_schemas.progress import StageState
from tessera_schemas.results import (
    GlossaryTerm,
    LineRange,
    TranslationResult,
    logical_line_of,
)


def test_line_range_accepts_wire_aliases() -> None:
    """Line spans accept from/to as well as start/end."""
    by_alias = LineRange.model_validate({"from": 0, "to": 5})
    by_name = LineRange(start=0, end=5)

    assert by_alias == by_name


def test_line_range_rejects_inverted_span() -> None:
    """Spans must not end before they start."""
    with pytest.raises(ValidationError):
        LineRange(start=5, end=2)


def test_logical_line_of_uses_first_key() -> None:
    """Only the first entry of a line map is used."""
    assert logical_line_of({"3": LineRange(start=0, end=1)}) == 3
    assert logical_line_of({"0": LineRange(start=0, end=1)}) is None
    assert logical_line_of(None) is None
    assert logical_line_of({}) is None


def test_translation_result_logical_line_number() -> None:
    """Results expose the logical line they write back to."""
    result = TranslationResult(
        id="r-0",
        original_text="a",
        translated_text="A",
        line_numbers={"2": LineRange(start=2, end=3)},
        timestamp="2026-01-26T12:00:00Z",
    )

    assert result.logical_line_number == 2


def test_glossary_term_is_blank() -> None:
    """Terms missing either side are blank."""
    assert GlossaryTerm(source_term=" ", translated_term="x").is_blank
    assert not GlossaryTerm(source_term="a", translated_term="b").is_blank


def test_write_back_options_placeholder_resolution() -> None:
    """Placeholder text follows the configured type unless overridden."""
    assert WriteBackOptions().placeholder == LINE_PLACEHOLDER
    invisible = WriteBackOptions(placeholder_type=PlaceholderType.INVISIBLE)
    none = WriteBackOptions(placeholder_type=PlaceholderType.NONE)
    custom = WriteBackOptions(custom_placeholder="~")

    assert invisible.placeholder == INVISIBLE_PLACEHOLDER
    assert none.placeholder == ""
    assert custom.placeholder == "~"


def test_document_selection_rejects_inverted_bounds() -> None:
    """The last selected line cannot precede the first."""
    with pytest.raises(ValidationError):
        DocumentSelection(text="x", first_line=3, last_line=1)


def test_errored_stage_state_requires_message() -> None:
    """Errored stage states must carry an error message."""
    with pytest.raises(ValidationError):
        StageState(stage=StageName.TRANSLATION, status=StageStatus.ERRORED)


def test_text_is_never_stripped() -> None:
    """Whitespace in document text survives validation."""
    selection = DocumentSelection(text="  indented  ")

    assert selection.text == "  indented  "
