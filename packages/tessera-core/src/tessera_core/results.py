"""Result store with the user edit overlay."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tessera_core.diff import diff_words
from tessera_core.ports.orchestrator import (
    OrchestrationError,
    OrchestrationErrorCode,
    OrchestrationErrorDetails,
    OrchestrationErrorInfo,
)
from tessera_schemas.diff import ResultView
from tessera_schemas.primitives import ResultViewKind, Timestamp
from tessera_schemas.results import (
    ResultMetadata,
    Segment,
    TextPair,
    TranslationResult,
)
from tessera_schemas.stream import BatchCompletedEvent, UpdatedItem

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _EditSession:
    result_id: str
    buffer: str


class ResultStore:
    """Authoritative table of translation results and user overlays.

    Results keep the machine text; overlays keep user replacements keyed by
    result id. The current text of a result is its overlay when one exists,
    otherwise its machine translation.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._results: list[TranslationResult] = []
        self._overlays: dict[str, str] = {}
        self._editing: _EditSession | None = None

    def __len__(self) -> int:
        return len(self._results)

    @property
    def results(self) -> list[TranslationResult]:
        """Machine results in commit order (copies)."""
        return [result.model_copy(deep=True) for result in self._results]

    @property
    def overlays(self) -> dict[str, str]:
        """User overlays keyed by result id (copy)."""
        return dict(self._overlays)

    @property
    def editing_id(self) -> str | None:
        """Id of the result being edited, if any."""
        return self._editing.result_id if self._editing else None

    @property
    def edit_buffer(self) -> str | None:
        """Text of the active edit buffer, if any."""
        return self._editing.buffer if self._editing else None

    def get(self, result_id: str) -> TranslationResult:
        """Return the stored result with the given id.

        Raises:
            OrchestrationError: If no result has this id.
        """
        for result in self._results:
            if result.id == result_id:
                return result
        raise OrchestrationError(
            OrchestrationErrorInfo(
                code=OrchestrationErrorCode.UNKNOWN_RESULT,
                message=f"No translation result with id {result_id}",
                details=OrchestrationErrorDetails(reason=result_id),
            )
        )

    def commit_batch(
        self,
        event: BatchCompletedEvent,
        segments: list[Segment],
        *,
        run_token: str,
        timestamp: Timestamp,
        model_name: str | None = None,
        text_type: str | None = None,
    ) -> list[TranslationResult]:
        """Append the results of one completed translation batch.

        Batch items map onto segments positionally: the n-th committed
        result of a run belongs to the n-th segment, across batches.

        Args:
            event: Completed batch event.
            segments: Segments sent in the translation request.
            run_token: Token making result ids unique to the run.
            timestamp: Commit timestamp.
            model_name: Model identifier requested.
            text_type: Text type requested.

        Returns:
            list[TranslationResult]: The newly appended results.
        """
        created: list[TranslationResult] = []
        for item in event.batch_results:
            index = len(self._results)
            segment = segments[index] if index < len(segments) else None
            if segment is None:
                logger.warning(
                    "Batch %s returned more results than segments; "
                    "result %d has no line mapping",
                    event.batch_id,
                    index,
                )
            model_used = model_name
            if item.metadata and isinstance(item.metadata.get("model_used"), str):
                model_used = str(item.metadata["model_used"])
            result = TranslationResult(
                id=f"{run_token}-{index}",
                original_text=item.original_text
                or (segment.original_text if segment else ""),
                translated_text=item.translated_text,
                line_numbers=(
                    {
                        key: span.model_copy()
                        for key, span in segment.line_numbers.items()
                    }
                    if segment is not None and segment.line_numbers
                    else None
                ),
                timestamp=timestamp,
                metadata=ResultMetadata(
                    batch_id=event.batch_id,
                    batch_number=event.batch_number,
                    model_used=model_used,
                    text_type=text_type,
                    extra=item.metadata,
                ),
            )
            self._results.append(result)
            created.append(result)
        return created

    def apply_retranslation(
        self, index: int, updated: UpdatedItem
    ) -> TranslationResult | None:
        """Overwrite the result at ``index`` with a standardized translation.

        The text the user currently sees (overlay-aware) becomes
        ``previous_translated_text``. Overlays are left in place.

        Args:
            index: Position of the result in commit order.
            updated: Standardized text pair from the service.

        Returns:
            TranslationResult | None: The updated result, or None when the
            index is out of range.
        """
        if not 0 <= index < len(self._results):
            logger.warning("Standardization targeted unknown result index %d", index)
            return None
        result = self._results[index]
        previous = self.current_text(result.id)
        result.previous_translated_text = previous
        result.translated_text = updated.translated_text
        if updated.original_text:
            result.original_text = updated.original_text
        result.is_updated = True
        return result

    def current_text(self, result_id: str) -> str:
        """Return the overlay text if present, else the machine translation."""
        if result_id in self._overlays:
            return self._overlays[result_id]
        return self.get(result_id).translated_text

    def current_results(self) -> list[TranslationResult]:
        """Return copies of all results with overlay text applied."""
        return [
            result.model_copy(
                update={"translated_text": self.current_text(result.id)}, deep=True
            )
            for result in self._results
        ]

    def current_pairs(self) -> list[TextPair]:
        """Return overlay-aware original/translated pairs in commit order."""
        return [
            TextPair(
                original_text=result.original_text,
                translated_text=self.current_text(result.id),
                metadata=result.metadata.model_copy(),
            )
            for result in self._results
        ]

    def start_editing(self, result_id: str) -> str:
        """Open an edit buffer seeded from the current text.

        Returns:
            str: The seeded buffer text.
        """
        buffer = self.current_text(result_id)
        self._editing = _EditSession(result_id=result_id, buffer=buffer)
        return buffer

    def update_edit_buffer(self, text: str) -> None:
        """Replace the text of the active edit buffer.

        Raises:
            OrchestrationError: If no edit is in progress.
        """
        self._require_editing().buffer = text

    def cancel_editing(self) -> None:
        """Discard the active edit buffer."""
        self._editing = None

    def save_edit(self, text: str | None = None) -> str:
        """Commit the edit buffer (or ``text``) as the result's overlay.

        Args:
            text: Optional final text; defaults to the buffer contents.

        Returns:
            str: Id of the result that received the overlay.

        Raises:
            OrchestrationError: If no edit is in progress.
        """
        session = self._require_editing()
        if text is not None:
            session.buffer = text
        self._overlays[session.result_id] = session.buffer
        self._editing = None
        return session.result_id

    def set_overlay(self, result_id: str, text: str) -> None:
        """Store an overlay for a result without an edit session."""
        self.get(result_id)
        self._overlays[result_id] = text

    def reset_to_original(self, result_id: str) -> None:
        """Drop a result's overlay, reseeding its buffer if being edited."""
        result = self.get(result_id)
        self._overlays.pop(result_id, None)
        if self._editing is not None and self._editing.result_id == result_id:
            self._editing.buffer = result.translated_text

    def view(self, result_id: str) -> ResultView:
        """Resolve how a result should be presented right now.

        Priority: active edit buffer, then overlay diff against the machine
        text, then standardization diff, then plain text.

        Returns:
            ResultView: Presentation state with diff spans when relevant.
        """
        result = self.get(result_id)
        if self._editing is not None and self._editing.result_id == result_id:
            return ResultView(
                result_id=result_id,
                kind=ResultViewKind.EDITING,
                text=self._editing.buffer,
            )
        if result_id in self._overlays:
            overlay = self._overlays[result_id]
            return ResultView(
                result_id=result_id,
                kind=ResultViewKind.EDITED,
                text=overlay,
                spans=diff_words(result.translated_text, overlay),
            )
        if result.is_updated and result.previous_translated_text is not None:
            return ResultView(
                result_id=result_id,
                kind=ResultViewKind.UPDATED,
                text=result.translated_text,
                spans=diff_words(
                    result.previous_translated_text, result.translated_text
                ),
            )
        return ResultView(
            result_id=result_id,
            kind=ResultViewKind.PLAIN,
            text=result.translated_text,
        )

    def clear_results(self) -> None:
        """Drop machine results; overlays and their keys survive."""
        self._results.clear()
        self._editing = None

    def clear(self) -> None:
        """Drop results, overlays and any edit session."""
        self._results.clear()
        self._overlays.clear()
        self._editing = None

    def _require_editing(self) -> _EditSession:
        if self._editing is None:
            raise OrchestrationError(
                OrchestrationErrorInfo(
                    code=OrchestrationErrorCode.INVALID_REQUEST,
                    message="No translation result is being edited",
                )
            )
        return self._editing
