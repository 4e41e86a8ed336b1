"""Line-preserving write-back of translation results into a document."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from tessera_core.ports.document import DocumentProtocol
from tessera_schemas.document import WriteBackOptions, WriteBackResult
from tessera_schemas.results import TranslationResult

logger = logging.getLogger(__name__)

NO_MAPPING_MESSAGE = (
    "No line number mapping found for translation results. Please try again "
    "after running translation on selected lines."
)


def flatten_text(text: str) -> str:
    """Collapse text onto a single line.

    Lines are trimmed, empty lines dropped and the rest joined with single
    spaces. Flattening a flattened string returns it unchanged.
    """
    return " ".join(line.strip() for line in text.split("\n") if line.strip())


def has_line_mappings(results: Sequence[TranslationResult]) -> bool:
    """Return whether any result can be written back."""
    return any(result.logical_line_number is not None for result in results)


def preview_lines(results: Sequence[TranslationResult]) -> list[int]:
    """Return the logical lines a write-back would touch, ascending."""
    return sorted(
        {
            result.logical_line_number
            for result in results
            if result.logical_line_number is not None
        }
    )


class LineReconciler:
    """Writes results back so that one logical line stays one physical line.

    Logical lines are 1-based counts of non-empty lines. Blank lines keep
    their position and are never written to. The physical line count only
    grows by the extension lines this reconciler inserts and reports.
    """

    def __init__(self, options: WriteBackOptions | None = None) -> None:
        """Initialize the reconciler.

        Args:
            options: Default write-back options.
        """
        self._options = options or WriteBackOptions()

    def write_back(
        self,
        document: DocumentProtocol,
        results: Sequence[TranslationResult],
        options: WriteBackOptions | None = None,
    ) -> WriteBackResult:
        """Replace or append one physical line per mapped result.

        ``translated_text`` of each result is written as-is, so callers pass
        overlay-aware results. When two results map to the same logical line
        the later one wins.

        Args:
            document: Document receiving the edits.
            results: Results to write.
            options: Optional override of the default options.

        Returns:
            WriteBackResult: Counts of overwritten and inserted lines.
        """
        options = options or self._options
        placeholder = options.placeholder

        targets: dict[int, str] = {}
        for result in results:
            line_number = result.logical_line_number
            if line_number is None:
                continue
            if line_number in targets:
                logger.warning(
                    "Multiple results map to logical line %d; keeping the last",
                    line_number,
                )
            targets[line_number] = result.translated_text

        if not targets:
            logger.warning("Write-back rejected: no result has a line mapping")
            return WriteBackResult(success=False, message=NO_MAPPING_MESSAGE)

        lines = document.get_text().split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        # Filler lines inserted by this pass hold a logical number even when blank
        reserved: set[int] = set()
        lines_inserted = 0
        lines_overwritten = 0
        skipped: list[int] = []
        cursor: int | None = None

        if _is_empty(lines):
            max_line = max(targets)
            seed_lines = [placeholder] * max_line
            seed_end = len(lines[0]) if lines else 0
            document.replace_range(0, seed_end, "\n".join(seed_lines))
            lines_inserted += max_line - len(lines)
            lines = seed_lines
            reserved.update(range(max_line))

        for line_number, text in sorted(targets.items()):
            flattened = flatten_text(text)
            if not flattened:
                logger.warning(
                    "Skipping logical line %d: translation is empty", line_number
                )
                skipped.append(line_number)
                continue

            mapping = _logical_index_map(lines, reserved)
            if line_number in mapping:
                index = mapping[line_number]
                start = _line_offset(lines, index)
                document.replace_range(start, start + len(lines[index]), flattened)
                lines[index] = flattened
                reserved.discard(index)
                lines_overwritten += 1
                cursor = start + len(flattened)
            else:
                gap = line_number - len(mapping)
                fillers = [placeholder] * (gap - 1)
                insertion = "".join(f"\n{filler}" for filler in fillers)
                insertion += f"\n{flattened}"
                end = _content_end(lines)
                document.insert_text(end, insertion)
                first_new = len(lines)
                lines.extend([*fillers, flattened])
                reserved.update(range(first_new, first_new + len(fillers)))
                lines_inserted += gap
                lines_overwritten += 1
                cursor = end + len(insertion)

        placeholders_added = len(reserved)
        if cursor is None:
            cursor = _content_end(lines)
        document.set_cursor(cursor)

        if lines_overwritten == 0:
            return WriteBackResult(
                success=False,
                message="No lines were written.",
                lines_inserted=lines_inserted,
                placeholders_added=placeholders_added,
                skipped_lines=skipped,
                cursor_position=cursor,
            )
        return WriteBackResult(
            success=True,
            message=_summary(lines_overwritten, placeholders_added),
            lines_overwritten=lines_overwritten,
            placeholders_added=placeholders_added,
            lines_inserted=lines_inserted,
            skipped_lines=skipped,
            cursor_position=cursor,
        )


def _is_empty(lines: list[str]) -> bool:
    return len(lines) == 0 or (len(lines) == 1 and not lines[0].strip())


def _logical_index_map(lines: list[str], reserved: set[int]) -> dict[int, int]:
    mapping: dict[int, int] = {}
    logical = 1
    for index, line in enumerate(lines):
        if line.strip() or index in reserved:
            mapping[logical] = index
            logical += 1
    return mapping


def _line_offset(lines: list[str], index: int) -> int:
    return sum(len(line) + 1 for line in lines[:index])


def _content_end(lines: list[str]) -> int:
    if not lines:
        return 0
    return _line_offset(lines, len(lines) - 1) + len(lines[-1])


def _summary(lines_overwritten: int, placeholders_added: int) -> str:
    line_word = "line" if lines_overwritten == 1 else "lines"
    message = f"Successfully overwritten {lines_overwritten} {line_word}"
    if placeholders_added > 0:
        noun = "placeholder" if placeholders_added == 1 else "placeholders"
        message += f" ({placeholders_added} {noun} added for line numbering)"
    return message + "."
