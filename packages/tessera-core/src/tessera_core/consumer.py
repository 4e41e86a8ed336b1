"""Stream event consumer and the pure stage-state reducer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from dataclasses import dataclass
from datetime import UTC, datetime

from tessera_core.ports.orchestrator import ProgressSinkProtocol
from tessera_core.ports.transport import TransportError
from tessera_schemas.events import ProgressEvent
from tessera_schemas.primitives import (
    TERMINAL_STAGE_STATUSES,
    RunId,
    StageName,
    StageStatus,
    Timestamp,
)
from tessera_schemas.progress import ProgressUpdate, StageState
from tessera_schemas.stream import (
    BatchCompletedEvent,
    BatchStartEvent,
    CompletionEvent,
    ErrorEvent,
    GlossaryBatchCompletedEvent,
    InitializationEvent,
    ItemCompletedEvent,
    ItemStartEvent,
    PlanningEvent,
    RawContentEvent,
    RetranslationCompletedEvent,
    StreamEvent,
)

logger = logging.getLogger(__name__)

type EventCommitter = Callable[[StreamEvent], None]

COMMIT_EVENTS = (
    BatchCompletedEvent,
    GlossaryBatchCompletedEvent,
    RetranslationCompletedEvent,
    CompletionEvent,
)


def now_timestamp() -> Timestamp:
    """Return the current UTC time as an ISO-8601 timestamp."""
    value = datetime.now(tz=UTC).isoformat()
    return value.replace("+00:00", "Z")


@dataclass(slots=True)
class CancellationToken:
    """Cancellation flag shared by one stage run.

    While a consumer reads its stream the token also holds the consuming
    task, so cancelling interrupts a read that is waiting on the service.
    """

    cancelled: bool = False
    task: asyncio.Task[object] | None = None

    def cancel(self) -> None:
        """Request that no further events of the run are applied."""
        if self.cancelled:
            return
        self.cancelled = True
        task = self.task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()


def reduce_stage_state(state: StageState, event: StreamEvent) -> StageState:
    """Apply one stream event to a stage state.

    The reducer never mutates its input. Progress only moves forward and a
    completion event forces it to 100.

    Args:
        state: Current stage state.
        event: Event to apply.

    Returns:
        StageState: The next stage state.
    """
    stage = state.stage
    match event:
        case InitializationEvent():
            total = event.total
            count = "all" if total is None else str(total)
            return _update(
                state,
                status=StageStatus.INITIALIZING,
                total_items=total,
                status_text=event.message or f"Starting {stage} for {count} items...",
            )
        case PlanningEvent():
            return _update(
                state,
                status=StageStatus.PLANNING,
                total_batches=event.total_batches,
                status_text=event.message
                or f"Planning {event.total_batches} batches...",
            )
        case BatchStartEvent():
            return _update(
                state,
                status=StageStatus.BATCH_STARTED,
                progress_percent=_advance(
                    state.progress_percent, event.progress_percent
                ),
                status_text=event.message
                or f"Processing batch {event.batch_number}...",
            )
        case ItemStartEvent():
            index_text = f" {event.index + 1}" if event.index is not None else ""
            return _update(
                state,
                status=StageStatus.PROCESSING,
                current_index=event.index,
                status_text=event.message or f"Processing item{index_text}...",
            )
        case ItemCompletedEvent():
            completed = state.completed_items
            if event.number is not None:
                completed = max(completed, event.number)
            return _update(
                state,
                status=StageStatus.PROCESSING,
                completed_items=completed,
                progress_percent=_advance(
                    state.progress_percent, event.progress_percent
                ),
                status_text=event.preview or event.message or state.status_text,
            )
        case BatchCompletedEvent():
            return _update(
                state,
                status=StageStatus.BATCH_COMPLETED,
                committed_count=state.committed_count + 1,
                completed_items=state.completed_items + len(event.batch_results),
                progress_percent=_advance(
                    state.progress_percent, event.cumulative_progress
                ),
                status_text=event.message
                or f"Completed batch {event.batch_number or state.committed_count + 1}",
            )
        case GlossaryBatchCompletedEvent():
            return _update(
                state,
                status=StageStatus.BATCH_COMPLETED,
                committed_count=state.committed_count + 1,
                progress_percent=_advance(
                    state.progress_percent, event.cumulative_progress
                ),
                status_text=event.message or f"Extracted {len(event.terms)} terms",
            )
        case RetranslationCompletedEvent():
            completed = max(state.completed_items, event.index + 1)
            percent: float | None = None
            if state.total_items:
                percent = round(completed / state.total_items * 100)
            return _update(
                state,
                status=StageStatus.BATCH_COMPLETED,
                committed_count=state.committed_count + 1,
                completed_items=completed,
                progress_percent=_advance(state.progress_percent, percent),
                status_text=event.message or f"Updated item {event.index + 1}",
            )
        case CompletionEvent():
            return _update(
                state,
                status=StageStatus.COMPLETING,
                progress_percent=100.0,
                current_index=None,
                status_text=event.message or f"{stage} completed",
            )
        case ErrorEvent():
            return _update(
                state,
                status=StageStatus.ERRORED,
                current_index=None,
                error_message=event.error_message,
                status_text=f"{stage} error: {event.error_message}",
            )
        case RawContentEvent():
            return state
    return state


class StreamEventConsumer:
    """Drives one stage run from its event stream.

    Events are applied strictly in arrival order. Only commit events reach
    the committer; everything else only updates the observable stage state.
    """

    def __init__(
        self,
        stage: StageName,
        committer: EventCommitter,
        *,
        run_id: RunId,
        token: CancellationToken | None = None,
        progress_sink: ProgressSinkProtocol | None = None,
        clock: Callable[[], Timestamp] | None = None,
    ) -> None:
        """Initialize the consumer.

        Args:
            stage: Stage this consumer drives.
            committer: Callback applying commit events to the stores.
            run_id: Identifier of the stage run.
            token: Cancellation token checked before every event.
            progress_sink: Optional progress sink.
            clock: Optional timestamp provider.
        """
        self._stage = stage
        self._committer = committer
        self._run_id = run_id
        self._token = token or CancellationToken()
        self._progress_sink = progress_sink
        self._clock = clock or now_timestamp
        self._saw_completion = False
        self._transport_error: TransportError | None = None
        self._state = StageState(stage=stage, run_id=run_id)

    @property
    def state(self) -> StageState:
        """Current stage state."""
        return self._state

    @property
    def token(self) -> CancellationToken:
        """Cancellation token of this run."""
        return self._token

    @property
    def saw_completion(self) -> bool:
        """Whether the stream delivered a completion event."""
        return self._saw_completion

    @property
    def transport_error(self) -> TransportError | None:
        """Transport failure that ended the run, if any."""
        return self._transport_error

    async def consume(self, events: AsyncIterator[StreamEvent]) -> StageState:
        """Apply events until the stream ends, fails or is cancelled.

        Transport failures end the run as errored; commits already applied
        are kept. Cancelling the token interrupts a pending read and closes
        the stream.

        Args:
            events: Event stream of one service call.

        Returns:
            StageState: Final stage state.
        """
        self._state = _update(
            self._state,
            status=StageStatus.INITIALIZING,
            started_at=self._clock(),
            status_text=f"Starting {self._stage}...",
        )
        await self._emit(ProgressEvent.STAGE_STARTED)
        try:
            self._token.task = asyncio.current_task()
            async with aclosing(events) as stream:
                if not self._token.cancelled:
                    async for event in stream:
                        if self._token.cancelled:
                            break
                        await self._apply(event)
                        if self._state.status == StageStatus.ERRORED:
                            break
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if not self._token.cancelled or task is None or task.uncancel() > 0:
                raise
        except TransportError as exc:
            if not self._token.cancelled:
                self._transport_error = exc
                self._state = _update(
                    self._state,
                    status=StageStatus.ERRORED,
                    current_index=None,
                    error_message=str(exc),
                    status_text=f"{self._stage} error: {exc}",
                )
        finally:
            self._token.task = None
        return await self._finish()

    async def _apply(self, event: StreamEvent) -> None:
        if isinstance(event, RawContentEvent):
            logger.debug("%s raw content: %s", self._stage, event.content)
        if isinstance(event, COMMIT_EVENTS):
            self._committer(event)
        if isinstance(event, CompletionEvent):
            self._saw_completion = True
        self._state = reduce_stage_state(self._state, event)
        if self._state.status != StageStatus.ERRORED:
            await self._emit(ProgressEvent.STAGE_PROGRESS)

    async def _finish(self) -> StageState:
        if self._token.cancelled:
            self._state = _update(
                self._state,
                status=StageStatus.ABORTED,
                current_index=None,
                status_text=f"{self._stage} stopped",
                completed_at=self._clock(),
            )
            await self._emit(ProgressEvent.STAGE_CANCELLED)
        elif self._state.status == StageStatus.ERRORED:
            self._state = _update(self._state, completed_at=self._clock())
            await self._emit(ProgressEvent.STAGE_FAILED)
        else:
            if not self._saw_completion:
                logger.warning(
                    "%s stream ended without a completion event", self._stage
                )
            self._state = _update(
                self._state,
                status=StageStatus.DONE,
                current_index=None,
                completed_at=self._clock(),
            )
            await self._emit(ProgressEvent.STAGE_COMPLETED)
        return self._state

    async def _emit(self, event: ProgressEvent) -> None:
        if self._progress_sink is None:
            return
        state = self._state
        update = ProgressUpdate(
            run_id=self._run_id,
            event=event,
            timestamp=self._clock(),
            stage=self._stage,
            status=StageStatus(state.status),
            progress_percent=state.progress_percent,
            message=state.error_message or state.status_text or None,
        )
        await self._progress_sink.emit_progress(update)


def is_terminal(state: StageState) -> bool:
    """Return whether a stage state is terminal."""
    return state.status in TERMINAL_STAGE_STATUSES


def _advance(current: float, reported: float | None) -> float:
    if reported is None:
        return current
    return min(100.0, max(current, float(reported)))


def _update(state: StageState, **changes: object) -> StageState:
    return state.model_copy(update=changes)
