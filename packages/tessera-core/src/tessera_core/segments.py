"""Selection splitting and text pairing."""

from __future__ import annotations

import logging
import re

from tessera_core.ports.orchestrator import (
    OrchestrationError,
    OrchestrationErrorCode,
    OrchestrationErrorDetails,
    OrchestrationErrorInfo,
)
from tessera_schemas.document import DocumentSelection
from tessera_schemas.primitives import PairingMethod, SegmentMismatchPolicy
from tessera_schemas.results import LineNumberMap, ResultMetadata, Segment, TextPair

logger = logging.getLogger(__name__)

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?།。])\s+")


def extract_segments(
    selection: DocumentSelection,
    policy: SegmentMismatchPolicy = SegmentMismatchPolicy.NULL_MAPPING,
) -> list[Segment]:
    """Split a selection into line-addressed segments.

    Non-empty trimmed lines are zipped 1:1 against the selection's line map
    sorted by numeric key. The map is copied so later document edits cannot
    shift the mapping of an in-flight run.

    Args:
        selection: Selected text plus its captured line map.
        policy: Handling of a length mismatch between lines and map entries.

    Returns:
        list[Segment]: Segments in selection order.

    Raises:
        OrchestrationError: If the lengths differ and the policy is ``error``.
    """
    lines = [line.strip() for line in selection.text.split("\n")]
    lines = [line for line in lines if line]
    entries = sorted(
        ((key, span.model_copy()) for key, span in selection.line_ranges.items()),
        key=lambda item: int(item[0]),
    )

    if len(lines) != len(entries):
        if policy == SegmentMismatchPolicy.ERROR:
            raise OrchestrationError(
                OrchestrationErrorInfo(
                    code=OrchestrationErrorCode.SEGMENT_MISMATCH,
                    message=(
                        f"Selection has {len(lines)} lines but the line map has "
                        f"{len(entries)} entries"
                    ),
                    details=OrchestrationErrorDetails(
                        reason="segment_count_mismatch"
                    ),
                )
            )
        logger.warning(
            "Selection has %d lines but line map has %d entries; "
            "unmatched segments will not be written back",
            len(lines),
            len(entries),
        )

    segments: list[Segment] = []
    for index, text in enumerate(lines):
        line_numbers: LineNumberMap | None = None
        source_line_number: int | None = None
        if index < len(entries):
            key, span = entries[index]
            line_numbers = {key: span}
            source_line_number = int(key) if int(key) > 0 else None
        segments.append(
            Segment(
                id=f"segment-{index}",
                original_text=text,
                source_line_number=source_line_number,
                line_numbers=line_numbers,
            )
        )
    return segments


def extract_text_pairs(source_text: str, translated_text: str) -> list[TextPair]:
    """Pair two whole documents for standalone glossary extraction.

    Paragraphs (blank-line separated, else one per line) are paired when
    both sides have the same count, then sentences; otherwise the two full
    texts form a single pair.

    Args:
        source_text: Text in the source language.
        translated_text: Its existing translation.

    Returns:
        list[TextPair]: Pairs tagged with the pairing method used; empty when
        either side is blank.
    """
    if not source_text.strip() or not translated_text.strip():
        return []

    for method, splitter in (
        (PairingMethod.PARAGRAPH, _split_paragraphs),
        (PairingMethod.SENTENCE, _split_sentences),
    ):
        source_parts = splitter(source_text)
        translated_parts = splitter(translated_text)
        if len(source_parts) == len(translated_parts):
            return [
                TextPair(
                    original_text=original,
                    translated_text=translated,
                    metadata=ResultMetadata(pairing_method=method, pair_index=index),
                )
                for index, (original, translated) in enumerate(
                    zip(source_parts, translated_parts, strict=True)
                )
            ]

    return [
        TextPair(
            original_text=source_text.strip(),
            translated_text=translated_text.strip(),
            metadata=ResultMetadata(
                pairing_method=PairingMethod.FULL_TEXT, pair_index=0
            ),
        )
    ]


def _split_paragraphs(text: str) -> list[str]:
    parts = _PARAGRAPH_SPLIT.split(text)
    if len(parts) == 1:
        parts = text.split("\n")
    return [part.strip() for part in parts if part.strip()]


def _split_sentences(text: str) -> list[str]:
    return [part.strip() for part in _SENTENCE_SPLIT.split(text) if part.strip()]
