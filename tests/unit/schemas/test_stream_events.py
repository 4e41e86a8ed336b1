"""Unit tests for stream event parsing."""

import pytest
from pydantic import ValidationError

from tessera_schemas.stream import (
    BatchCompletedEvent,
    CompletionEvent,
    ErrorEvent,
    InitializationEvent,
    ItemCompletedEvent,
    ItemStartEvent,
    RetranslationCompletedEvent,
    parse_stream_event,
)


def test_parse_batch_completed_event() -> None:
    """Batch results are parsed in input order."""
    event = parse_stream_event({
        "type": "batch_completed",
        "batch_id": "b1",
        "batch_number": "1",
        "batch_results": [
            {"original_text": "a", "translated_text": "A"},
            {"original_text": "b", "translated_text": "B"},
        ],
        "cumulative_progress": 50,
    })

    assert isinstance(event, BatchCompletedEvent)
    assert event.batch_number == 1
    assert [item.translated_text for item in event.batch_results] == ["A", "B"]


def test_parse_unknown_event_type_returns_none() -> None:
    """Unknown event types are ignored rather than rejected."""
    assert parse_stream_event({"type": "heartbeat"}) is None
    assert parse_stream_event({"no_type": True}) is None


def test_parse_malformed_known_event_raises() -> None:
    """Known event types with invalid payloads fail validation."""
    with pytest.raises(ValidationError):
        parse_stream_event({"type": "retranslation_completed", "index": "x"})


def test_initialization_total_accepts_either_field() -> None:
    """Translation reports total_texts, other stages report total_items."""
    texts = parse_stream_event({"type": "initialization", "total_texts": 4})
    items = parse_stream_event({"type": "initialization", "total_items": 7})

    assert isinstance(texts, InitializationEvent)
    assert isinstance(items, InitializationEvent)
    assert texts.total == 4
    assert items.total == 7


def test_item_start_variants_share_one_model() -> None:
    """All per-item start events parse into the same model."""
    for event_type in (
        "translation_start",
        "retranslation_start",
        "extraction_start",
        "glossary_extraction_start",
    ):
        event = parse_stream_event({"type": event_type, "index": 2})
        assert isinstance(event, ItemStartEvent)
        assert event.index == 2


def test_item_completed_number_and_preview() -> None:
    """Completed ordinals and previews resolve across stage variants."""
    event = parse_stream_event({
        "type": "item_completed",
        "item_number": 3,
        "glossary_preview": "term",
    })

    assert isinstance(event, ItemCompletedEvent)
    assert event.number == 3
    assert event.preview == "term"


def test_completion_glossary_terms_accept_wire_names() -> None:
    """Glossary aggregates use original/translated/definition on the wire."""
    event = parse_stream_event({
        "type": "completion",
        "glossary_terms": [
            {"original": "dharma", "translated": "Dharma", "definition": "teaching"}
        ],
    })

    assert isinstance(event, CompletionEvent)
    assert event.glossary_terms is not None
    term = event.glossary_terms[0]
    assert term.source_term == "dharma"
    assert term.translated_term == "Dharma"
    assert term.context == "teaching"


def test_completion_inconsistent_terms_accept_bare_lists() -> None:
    """Inconsistent clusters may be sent as plain suggestion lists."""
    event = parse_stream_event({
        "type": "completion",
        "inconsistent_terms": {
            "bodhi": ["awakening", "enlightenment"],
            "sangha": {"suggestions": ["community"], "locations": [1]},
        },
    })

    assert isinstance(event, CompletionEvent)
    assert event.inconsistent_terms is not None
    assert event.inconsistent_terms["bodhi"].suggestions == [
        "awakening",
        "enlightenment",
    ]
    assert event.inconsistent_terms["sangha"].locations == [1]


def test_error_event_message_fallbacks() -> None:
    """Error text falls back from message to error to details."""
    event = parse_stream_event({"type": "error", "error": "boom"})
    bare = parse_stream_event({"type": "error"})

    assert isinstance(event, ErrorEvent)
    assert isinstance(bare, ErrorEvent)
    assert event.error_message == "boom"
    assert bare.error_message == "Unknown stream error"


def test_retranslation_completed_without_item() -> None:
    """Retranslation events may omit the updated item."""
    event = parse_stream_event({"type": "retranslation_completed", "index": 0})

    assert isinstance(event, RetranslationCompletedEvent)
    assert event.updated_item is None
