"""Word-level diffs between two text states."""

from __future__ import annotations

import re
from difflib import SequenceMatcher

from tessera_schemas.diff import ChangeStats, DiffSpan
from tessera_schemas.primitives import DiffOp

_TOKEN_PATTERN = re.compile(r"\s+|\S+")


def diff_words(old: str, new: str) -> list[DiffSpan]:
    """Compute word-level insert/delete spans between two texts.

    Whitespace runs are tokens of their own so that concatenating the
    ``equal`` and ``delete`` spans yields ``old`` and concatenating the
    ``equal`` and ``insert`` spans yields ``new``.

    Args:
        old: Text before the change.
        new: Text after the change.

    Returns:
        list[DiffSpan]: Spans in display order, adjacent spans merged.
    """
    old_tokens = _TOKEN_PATTERN.findall(old)
    new_tokens = _TOKEN_PATTERN.findall(new)
    matcher = SequenceMatcher(a=old_tokens, b=new_tokens, autojunk=False)

    spans: list[DiffSpan] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            _append(spans, DiffOp.EQUAL, "".join(old_tokens[i1:i2]))
        elif tag == "delete":
            _append(spans, DiffOp.DELETE, "".join(old_tokens[i1:i2]))
        elif tag == "insert":
            _append(spans, DiffOp.INSERT, "".join(new_tokens[j1:j2]))
        elif tag == "replace":
            _append(spans, DiffOp.DELETE, "".join(old_tokens[i1:i2]))
            _append(spans, DiffOp.INSERT, "".join(new_tokens[j1:j2]))
    return spans


def summarize_changes(old: str, new: str) -> ChangeStats:
    """Count inserted, deleted and unchanged words between two texts.

    Args:
        old: Text before the change.
        new: Text after the change.

    Returns:
        ChangeStats: Word counts and similarity ratio.
    """
    old_words = old.split()
    new_words = new.split()
    matcher = SequenceMatcher(a=old_words, b=new_words, autojunk=False)
    inserted = deleted = unchanged = 0
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            unchanged += i2 - i1
        if tag in {"delete", "replace"}:
            deleted += i2 - i1
        if tag in {"insert", "replace"}:
            inserted += j2 - j1
    similarity = matcher.ratio() if old_words or new_words else 1.0
    return ChangeStats(
        inserted_words=inserted,
        deleted_words=deleted,
        unchanged_words=unchanged,
        similarity=similarity,
    )


def _append(spans: list[DiffSpan], op: DiffOp, text: str) -> None:
    if not text:
        return
    if spans and spans[-1].op == op:
        spans[-1] = DiffSpan(op=op, text=spans[-1].text + text)
        return
    spans.append(DiffSpan(op=op, text=text))
