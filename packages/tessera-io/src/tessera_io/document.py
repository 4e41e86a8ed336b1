"""Document adapters backed by an in-memory buffer or a text file."""

from __future__ import annotations

from pathlib import Path

from tessera_core.ports.document import DocumentProtocol
from tessera_schemas.document import DocumentSelection
from tessera_schemas.results import LineNumberMap, LineRange


class InMemoryDocument(DocumentProtocol):
    """Editable document held in memory."""

    def __init__(self, text: str = "") -> None:
        """Initialize the document with its text."""
        self._text = text
        self._cursor = 0

    @property
    def cursor(self) -> int:
        """Current cursor offset."""
        return self._cursor

    def get_text(self) -> str:
        """Return the full current document text."""
        return self._text

    def replace_range(self, start: int, end: int, text: str) -> None:
        """Replace the characters in ``[start, end)`` with ``text``.

        Raises:
            ValueError: If the range falls outside the document.
        """
        if not 0 <= start <= end <= len(self._text):
            raise ValueError(
                f"Range {start}..{end} is outside a document of length "
                f"{len(self._text)}"
            )
        self._text = self._text[:start] + text + self._text[end:]

    def insert_text(self, position: int, text: str) -> None:
        """Insert ``text`` at ``position``."""
        self.replace_range(position, position, text)

    def set_cursor(self, position: int) -> None:
        """Move the cursor, clamped to the document bounds."""
        self._cursor = max(0, min(position, len(self._text)))

    def line_ranges(self) -> LineNumberMap:
        """Return spans of non-empty lines keyed by their logical number."""
        ranges: LineNumberMap = {}
        offset = 0
        logical = 1
        for line in self._text.split("\n"):
            if line.strip():
                ranges[str(logical)] = LineRange(start=offset, end=offset + len(line))
                logical += 1
            offset += len(line) + 1
        return ranges

    def selection(self, first_line: int, last_line: int) -> DocumentSelection:
        """Return logical lines ``first_line..last_line`` with their line map.

        Raises:
            ValueError: If the requested range is empty or out of bounds.
        """
        ranges = self.line_ranges()
        if first_line < 1 or last_line < first_line or str(last_line) not in ranges:
            raise ValueError(
                f"Lines {first_line}-{last_line} are not in a document with "
                f"{len(ranges)} non-empty lines"
            )
        selected = {
            str(number): ranges[str(number)]
            for number in range(first_line, last_line + 1)
        }
        start = selected[str(first_line)].start
        end = selected[str(last_line)].end
        return DocumentSelection(
            text=self._text[start:end],
            line_ranges=selected,
            first_line=first_line,
            last_line=last_line,
        )


class TextFileDocument(InMemoryDocument):
    """Document loaded from a UTF-8 text file and saved back explicitly."""

    def __init__(self, path: Path) -> None:
        """Load the document from ``path``; a missing file starts empty."""
        self._path = path
        text = path.read_text(encoding="utf-8") if path.exists() else ""
        super().__init__(text)

    @property
    def path(self) -> Path:
        """Backing file path."""
        return self._path

    def save(self) -> None:
        """Write the current text back to the file."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(self.get_text(), encoding="utf-8")
