"""Protocol definitions for the editable document collaborator."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from tessera_schemas.document import DocumentSelection
from tessera_schemas.results import LineNumberMap


@runtime_checkable
class DocumentProtocol(Protocol):
    """Protocol for a line-oriented document that accepts scoped edits.

    Offsets are character offsets into ``get_text()``; lines are separated
    by a single newline character.
    """

    def get_text(self) -> str:
        """Return the full current document text."""
        raise NotImplementedError

    def replace_range(self, start: int, end: int, text: str) -> None:
        """Replace the characters in ``[start, end)`` with ``text``."""
        raise NotImplementedError

    def insert_text(self, position: int, text: str) -> None:
        """Insert ``text`` at ``position``."""
        raise NotImplementedError

    def set_cursor(self, position: int) -> None:
        """Move the cursor to ``position``."""
        raise NotImplementedError

    def line_ranges(self) -> LineNumberMap:
        """Return the current logical line to character span map."""
        raise NotImplementedError

    def selection(self, first_line: int, last_line: int) -> DocumentSelection:
        """Return logical lines ``first_line..last_line`` with their line map."""
        raise NotImplementedError
