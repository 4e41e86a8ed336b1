"""Unit tests for the stream event consumer and stage reducer."""

import asyncio
from collections.abc import AsyncIterator, Callable

import pytest
from helpers.stubs import StubProgressSink, events, iterate

from tessera_core.consumer import (
    CancellationToken,
    StreamEventConsumer,
    is_terminal,
    reduce_stage_state,
)
from tessera_core.ports.transport import (
    TransportError,
    TransportErrorCode,
    TransportErrorInfo,
)
from tessera_schemas.events import ProgressEvent
from tessera_schemas.primitives import StageName, StageStatus, Timestamp
from tessera_schemas.progress import StageState
from tessera_schemas.stream import StreamEvent
from tessera_schemas.validation import validate_progress_monotonic


def _batch(number: int, *texts: str, progress: float | None = None) -> dict:
    payload: dict = {
        "type": "batch_completed",
        "batch_id": f"b{number}",
        "batch_number": number,
        "batch_results": [
            {"original_text": text, "translated_text": text.upper()} for text in texts
        ],
    }
    if progress is not None:
        payload["cumulative_progress"] = progress
    return payload


def _consumer(
    committed: list[StreamEvent],
    clock: Callable[[], Timestamp],
    sink: StubProgressSink | None = None,
    token: CancellationToken | None = None,
) -> StreamEventConsumer:
    return StreamEventConsumer(
        StageName.TRANSLATION,
        committed.append,
        run_id="run1",
        token=token,
        progress_sink=sink,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_consume_full_stream_reaches_done(
    clock: Callable[[], Timestamp],
) -> None:
    """A complete stream commits every batch and ends at 100 percent."""
    committed: list[StreamEvent] = []
    sink = StubProgressSink()
    consumer = _consumer(committed, clock, sink)
    script = events(
        {"type": "initialization", "total_texts": 3},
        {"type": "planning", "total_batches": 2},
        {"type": "batch_start", "batch_number": 1, "progress_percent": 0},
        {"type": "translation_start", "index": 0},
        {"type": "text_completed", "text_number": 1, "progress_percent": 30},
        _batch(1, "a", "b", progress=66),
        {"type": "batch_start", "batch_number": 2, "progress_percent": 66},
        _batch(2, "c", progress=100),
        {"type": "completion", "total_completed": 3},
    )

    state = await consumer.consume(iterate(script))

    assert state.status == StageStatus.DONE
    assert state.progress_percent == 100
    assert state.committed_count == 2
    assert state.total_items == 3
    assert state.total_batches == 2
    assert consumer.saw_completion
    assert [event.type for event in committed] == [
        "batch_completed",
        "batch_completed",
        "completion",
    ]
    assert sink.updates[0].event == ProgressEvent.STAGE_STARTED
    assert sink.updates[-1].event == ProgressEvent.STAGE_COMPLETED
    validate_progress_monotonic(sink.updates)


@pytest.mark.asyncio
async def test_error_after_batch_keeps_committed_results(
    clock: Callable[[], Timestamp],
) -> None:
    """Commits applied before a stream error are kept."""
    committed: list[StreamEvent] = []
    consumer = _consumer(committed, clock)
    script = events(_batch(1, "a", "b"), {"type": "error", "error": "model overloaded"})

    state = await consumer.consume(iterate(script))

    assert state.status == StageStatus.ERRORED
    assert state.error_message == "model overloaded"
    assert len(committed) == 1
    assert state.committed_count == 1


@pytest.mark.asyncio
async def test_events_after_error_are_ignored(
    clock: Callable[[], Timestamp],
) -> None:
    """Nothing is applied once the stage errored."""
    committed: list[StreamEvent] = []
    consumer = _consumer(committed, clock)
    script = events({"type": "error", "error": "boom"}, _batch(1, "a"))

    state = await consumer.consume(iterate(script))

    assert state.status == StageStatus.ERRORED
    assert committed == []


@pytest.mark.asyncio
async def test_cancellation_stops_applying_events(
    clock: Callable[[], Timestamp],
) -> None:
    """Events arriving after cancellation are never committed."""
    token = CancellationToken()
    committed: list[StreamEvent] = []

    def commit(event: StreamEvent) -> None:
        committed.append(event)
        token.cancel()

    sink = StubProgressSink()
    consumer = StreamEventConsumer(
        StageName.TRANSLATION,
        commit,
        run_id="run1",
        token=token,
        progress_sink=sink,
        clock=clock,
    )
    script = events(_batch(1, "a"), _batch(2, "b"), {"type": "completion"})

    state = await consumer.consume(iterate(script))

    assert state.status == StageStatus.ABORTED
    assert len(committed) == 1
    assert sink.updates[-1].event == ProgressEvent.STAGE_CANCELLED


@pytest.mark.asyncio
async def test_cancellation_interrupts_stalled_stream(
    clock: Callable[[], Timestamp],
) -> None:
    """Cancelling while the service sends nothing aborts the run at once."""
    token = CancellationToken()
    committed: list[StreamEvent] = []
    opened = asyncio.Event()
    closed: list[bool] = []

    async def stalled() -> AsyncIterator[StreamEvent]:
        opened.set()
        try:
            await asyncio.Event().wait()
            yield events(_batch(1, "a"))[0]
        finally:
            closed.append(True)

    consumer = _consumer(committed, clock, token=token)
    task = asyncio.create_task(consumer.consume(stalled()))
    await opened.wait()

    token.cancel()
    state = await asyncio.wait_for(task, timeout=1)

    assert state.status == StageStatus.ABORTED
    assert closed == [True]
    assert committed == []
    assert token.task is None
    assert not task.cancelled()


@pytest.mark.asyncio
async def test_transport_error_marks_stage_errored(
    clock: Callable[[], Timestamp],
) -> None:
    """A transport failure mid-stream ends the run as errored."""
    committed: list[StreamEvent] = []
    consumer = _consumer(committed, clock)
    error = TransportError(
        TransportErrorInfo(
            code=TransportErrorCode.UNREACHABLE,
            message="Could not reach the translation service.",
        )
    )

    state = await consumer.consume(iterate(events(_batch(1, "a")), error))

    assert state.status == StageStatus.ERRORED
    assert state.error_message == "Could not reach the translation service."
    assert consumer.transport_error is error
    assert len(committed) == 1


@pytest.mark.asyncio
async def test_stream_without_completion_still_finishes(
    clock: Callable[[], Timestamp],
) -> None:
    """Closing the stream without a completion event ends the run as done."""
    committed: list[StreamEvent] = []
    consumer = _consumer(committed, clock)

    state = await consumer.consume(iterate(events(_batch(1, "a"))))

    assert state.status == StageStatus.DONE
    assert not consumer.saw_completion
    assert is_terminal(state)


def test_reducer_never_moves_progress_backwards() -> None:
    """Lower reported percentages do not reduce progress."""
    state = StageState(stage=StageName.TRANSLATION)
    (first, second) = events(
        {"type": "batch_start", "batch_number": 2, "progress_percent": 60},
        {"type": "batch_start", "batch_number": 1, "progress_percent": 20},
    )

    state = reduce_stage_state(reduce_stage_state(state, first), second)

    assert state.progress_percent == 60


def test_reducer_clamps_progress_to_100() -> None:
    """Reported percentages above 100 are clamped."""
    state = StageState(stage=StageName.GLOSSARY)
    (event,) = events(
        {"type": "glossary_batch_completed", "terms": [], "cumulative_progress": 140}
    )

    state = reduce_stage_state(state, event)

    assert state.progress_percent == 100


def test_reducer_does_not_mutate_input() -> None:
    """The reducer returns a new state."""
    state = StageState(stage=StageName.TRANSLATION)
    (event,) = events({"type": "planning", "total_batches": 3})

    reduced = reduce_stage_state(state, event)

    assert state.total_batches is None
    assert reduced.total_batches == 3


def test_retranslation_progress_uses_total_items() -> None:
    """Apply progress is derived from the updated index."""
    state = StageState(stage=StageName.STANDARDIZATION_APPLY)
    init, update = events(
        {"type": "initialization", "total_items": 4},
        {
            "type": "retranslation_completed",
            "index": 1,
            "updated_item": {"translated_text": "x"},
        },
    )

    state = reduce_stage_state(reduce_stage_state(state, init), update)

    assert state.completed_items == 2
    assert state.progress_percent == 50
