"""Unit tests for pipeline orchestrator behavior."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

import pytest
from helpers.stubs import StubLogSink, StubProgressSink, StubTransport, events

from tessera_core.orchestrator import PipelineOrchestrator
from tessera_core.ports.orchestrator import OrchestrationError, OrchestrationErrorCode
from tessera_core.ports.transport import (
    StreamTransportProtocol,
    TransportError,
    TransportErrorCode,
    TransportErrorInfo,
)
from tessera_io.document import InMemoryDocument
from tessera_schemas.config import PipelineConfig, TranslationConfig
from tessera_schemas.document import DocumentSelection
from tessera_schemas.logs import LogEntry
from tessera_schemas.primitives import StageName, StageStatus, Timestamp
from tessera_schemas.requests import (
    ApplyStandardizationRequest,
    GlossaryExtractionRequest,
    StageRequest,
    StandardizationAnalysisRequest,
    TranslationRequest,
)
from tessera_schemas.results import TextPair
from tessera_schemas.stream import StreamEvent

SOURCE = "first line\n\nsecond line\nthird line"


def _selection(text: str = SOURCE) -> DocumentSelection:
    document = InMemoryDocument(text)
    last = len(document.line_ranges())
    return document.selection(1, last)


def _translation_script(*translations: str) -> list[StreamEvent]:
    return events(
        {"type": "initialization", "total_texts": len(translations)},
        {
            "type": "batch_completed",
            "batch_id": "b1",
            "batch_number": 1,
            "batch_results": [
                {"original_text": f"src {index}", "translated_text": text}
                for index, text in enumerate(translations)
            ],
            "cumulative_progress": 100,
        },
        {"type": "completion", "total_completed": len(translations)},
    )


def _glossary_script() -> list[StreamEvent]:
    return events(
        {"type": "initialization", "total_items": 3},
        {
            "type": "glossary_batch_completed",
            "terms": [{"original": "line", "translated": "LINE"}],
        },
        {"type": "completion", "total_items": 3},
    )


def _analysis_script() -> list[StreamEvent]:
    return events({
        "type": "completion",
        "inconsistent_terms": {"line": ["LINE", "ROW"]},
    })


def _orchestrator(
    transport: StreamTransportProtocol,
    clock: Callable[[], Timestamp],
    id_factory: Callable[[], str],
    config: PipelineConfig | None = None,
    log_sink: StubLogSink | None = None,
    progress_sink: StubProgressSink | None = None,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        transport,
        config,
        log_sink=log_sink,
        progress_sink=progress_sink,
        clock=clock,
        id_factory=id_factory,
    )


@pytest.mark.asyncio
async def test_translation_commits_line_addressed_results(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Each result carries the logical line of its segment."""
    transport = StubTransport({
        StageName.TRANSLATION: _translation_script("ONE", "TWO", "THREE")
    })
    log_sink = StubLogSink()
    orchestrator = _orchestrator(transport, clock, id_factory, log_sink=log_sink)

    state = await orchestrator.start_translation(_selection())

    assert state.status == StageStatus.DONE
    results = orchestrator.results.results
    assert [result.translated_text for result in results] == ["ONE", "TWO", "THREE"]
    assert [result.logical_line_number for result in results] == [1, 2, 3]
    stage, request = transport.requests[0]
    assert stage == StageName.TRANSLATION
    assert isinstance(request, TranslationRequest)
    assert request.texts == ["first line", "second line", "third line"]
    assert log_sink.events() == ["stage_started", "stage_completed"]


@pytest.mark.asyncio
async def test_partial_results_survive_stream_error(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Batches committed before an error stay in the store."""
    script = events(
        {
            "type": "batch_completed",
            "batch_results": [
                {"original_text": "a", "translated_text": "A"},
                {"original_text": "b", "translated_text": "B"},
            ],
        },
        {"type": "error", "error": "quota exceeded"},
    )
    log_sink = StubLogSink()
    orchestrator = _orchestrator(
        StubTransport({StageName.TRANSLATION: script}),
        clock,
        id_factory,
        log_sink=log_sink,
    )

    state = await orchestrator.start_translation(_selection())

    assert state.status == StageStatus.ERRORED
    assert len(orchestrator.results) == 2
    assert orchestrator.state(StageName.TRANSLATION).error_message == "quota exceeded"
    assert log_sink.events()[-1] == "stage_failed"


@pytest.mark.asyncio
async def test_transport_failure_is_logged_as_transport_failed(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Unreachable services end the stage as errored."""
    error = TransportError(
        TransportErrorInfo(
            code=TransportErrorCode.UNAVAILABLE,
            message="The translation service is temporarily unavailable.",
        )
    )
    log_sink = StubLogSink()
    orchestrator = _orchestrator(
        StubTransport(errors={StageName.TRANSLATION: error}),
        clock,
        id_factory,
        log_sink=log_sink,
    )

    state = await orchestrator.start_translation(_selection())

    assert state.status == StageStatus.ERRORED
    failed = log_sink.entries[-1]
    assert failed.data is not None
    assert failed.data["error_code"] == "transport_failed"


@pytest.mark.asyncio
async def test_empty_selection_is_rejected(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Translation needs at least one non-empty line."""
    transport = StubTransport()
    orchestrator = _orchestrator(transport, clock, id_factory)

    with pytest.raises(OrchestrationError) as exc_info:
        await orchestrator.start_translation(DocumentSelection(text="\n \n"))

    assert exc_info.value.info.code == OrchestrationErrorCode.MISSING_DEPENDENCY
    assert transport.requests == []


@pytest.mark.asyncio
async def test_glossary_requires_results(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Glossary extraction needs translation results."""
    orchestrator = _orchestrator(StubTransport(), clock, id_factory)

    with pytest.raises(OrchestrationError) as exc_info:
        await orchestrator.start_glossary_extraction()

    assert exc_info.value.info.code == OrchestrationErrorCode.MISSING_DEPENDENCY


@pytest.mark.asyncio
async def test_apply_requires_inconsistencies(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Apply needs inconsistent terms from an analysis."""
    transport = StubTransport({StageName.TRANSLATION: _translation_script("A")})
    orchestrator = _orchestrator(transport, clock, id_factory)
    await orchestrator.start_translation(_selection("a"))

    with pytest.raises(OrchestrationError) as exc_info:
        await orchestrator.start_standardization_apply()

    assert exc_info.value.info.code == OrchestrationErrorCode.MISSING_DEPENDENCY
    assert exc_info.value.info.details is not None
    assert exc_info.value.info.details.missing == ["inconsistent_terms"]


@pytest.mark.asyncio
async def test_auto_chain_runs_glossary_then_analysis(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Translation chains into glossary extraction and analysis."""
    transport = StubTransport({
        StageName.TRANSLATION: _translation_script("ONE", "TWO", "THREE"),
        StageName.GLOSSARY: _glossary_script(),
        StageName.STANDARDIZATION_ANALYSIS: _analysis_script(),
    })
    config = PipelineConfig(
        auto_extract_glossary=True,
        translation=TranslationConfig(batch_size=10),
    )
    log_sink = StubLogSink()
    orchestrator = _orchestrator(
        transport, clock, id_factory, config=config, log_sink=log_sink
    )

    await orchestrator.start_translation(_selection())

    assert transport.stages() == [
        StageName.TRANSLATION,
        StageName.GLOSSARY,
        StageName.STANDARDIZATION_ANALYSIS,
    ]
    glossary_request = transport.requests[1][1]
    assert isinstance(glossary_request, GlossaryExtractionRequest)
    assert glossary_request.batch_size == 5
    analysis_request = transport.requests[2][1]
    assert isinstance(analysis_request, StandardizationAnalysisRequest)
    assert analysis_request.items[0].glossary[0].source_term == "line"
    assert [term.source_word for term in orchestrator.inconsistencies.terms] == [
        "line"
    ]
    assert log_sink.events().count("stage_chained") == 2
    assert orchestrator.state(StageName.GLOSSARY).status == StageStatus.DONE


@pytest.mark.asyncio
async def test_glossary_without_terms_skips_analysis(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """An empty glossary does not start the analysis."""
    transport = StubTransport({
        StageName.TRANSLATION: _translation_script("A"),
        StageName.GLOSSARY: events({"type": "completion"}),
    })
    log_sink = StubLogSink()
    orchestrator = _orchestrator(transport, clock, id_factory, log_sink=log_sink)
    await orchestrator.start_translation(_selection("a"))

    await orchestrator.start_glossary_extraction()

    assert StageName.STANDARDIZATION_ANALYSIS not in transport.stages()
    assert log_sink.events()[-1] == "stage_skipped"


@pytest.mark.asyncio
async def test_apply_captures_overlay_as_previous_text(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Standardizing an edited result records the user's text as previous."""
    transport = StubTransport({
        StageName.TRANSLATION: _translation_script("ONE", "TWO", "THREE"),
        StageName.GLOSSARY: _glossary_script(),
        StageName.STANDARDIZATION_ANALYSIS: _analysis_script(),
        StageName.STANDARDIZATION_APPLY: events(
            {"type": "initialization", "total_items": 3},
            {
                "type": "retranslation_completed",
                "index": 0,
                "updated_item": {"original_text": "src 0", "translated_text": "ROW"},
            },
            {"type": "completion"},
        ),
    })
    orchestrator = _orchestrator(
        transport,
        clock,
        id_factory,
        config=PipelineConfig(auto_extract_glossary=True),
    )
    await orchestrator.start_translation(_selection())
    first, second, _ = (result.id for result in orchestrator.results.results)
    orchestrator.start_editing(first)
    orchestrator.save_edit("my line")
    orchestrator.start_editing(second)
    orchestrator.save_edit("TWO edited")
    orchestrator.select_standardization("line", "ROW")

    state = await orchestrator.start_standardization_apply()

    assert state.status == StageStatus.DONE
    request = transport.requests[-1][1]
    assert isinstance(request, ApplyStandardizationRequest)
    assert request.standardization_pairs[0].standardized_translation == "ROW"
    assert request.items[0].translated_text == "my line"
    updated = orchestrator.results.get(first)
    assert updated.previous_translated_text == "my line"
    assert updated.translated_text == "ROW"
    assert orchestrator.results.current_text(second) == "TWO edited"


@pytest.mark.asyncio
async def test_standalone_glossary_feeds_analysis(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Standalone pairs are analyzed when no translation results exist."""
    transport = StubTransport({
        StageName.GLOSSARY: _glossary_script(),
        StageName.STANDARDIZATION_ANALYSIS: _analysis_script(),
    })
    orchestrator = _orchestrator(transport, clock, id_factory)
    pairs = [TextPair(original_text="a line", translated_text="a LINE")]

    await orchestrator.start_standalone_glossary_extraction(pairs)

    assert transport.stages() == [
        StageName.GLOSSARY,
        StageName.STANDARDIZATION_ANALYSIS,
    ]
    assert orchestrator.snapshot().standalone_pairs[0].original_text == "a line"


class _GatedTransport(StreamTransportProtocol):
    def __init__(self) -> None:
        self.opened = asyncio.Event()
        self.release = asyncio.Event()
        self.closed = 0

    def open_stream(
        self, stage: StageName, request: StageRequest
    ) -> AsyncIterator[StreamEvent]:
        return self._stream()

    async def _stream(self) -> AsyncIterator[StreamEvent]:
        self.opened.set()
        try:
            await self.release.wait()
            for event in _translation_script("A"):
                yield event
        finally:
            self.closed += 1


@pytest.mark.asyncio
async def test_single_active_stage_and_stop(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """A second stage cannot start while one runs; stop aborts the run."""
    transport = _GatedTransport()
    orchestrator = _orchestrator(transport, clock, id_factory)
    task = asyncio.create_task(orchestrator.start_translation(_selection("a")))
    await transport.opened.wait()

    assert orchestrator.active_stage == StageName.TRANSLATION
    with pytest.raises(OrchestrationError) as exc_info:
        await orchestrator.start_translation(_selection("b"))
    assert exc_info.value.info.code == OrchestrationErrorCode.STAGE_BUSY

    assert orchestrator.stop(StageName.GLOSSARY) is False
    assert orchestrator.stop() is True
    state = await asyncio.wait_for(task, timeout=1)

    assert state.status == StageStatus.ABORTED
    assert transport.closed == 1
    assert len(orchestrator.results) == 0
    assert orchestrator.active_stage is None
    assert orchestrator.stop() is False


@pytest.mark.asyncio
async def test_stop_frees_stalled_stage_for_restart(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Stopping a run whose service never answers lets the stage restart."""
    transport = _GatedTransport()
    log_sink = StubLogSink()
    orchestrator = _orchestrator(transport, clock, id_factory, log_sink=log_sink)
    task = asyncio.create_task(orchestrator.start_translation(_selection("a")))
    await transport.opened.wait()

    orchestrator.stop()
    stopped = await asyncio.wait_for(task, timeout=1)

    assert stopped.status == StageStatus.ABORTED
    assert orchestrator.active_stage is None
    assert "stage_cancelled" in log_sink.events()

    transport.release.set()
    restarted = await orchestrator.start_translation(_selection("a"))

    assert restarted.status == StageStatus.DONE
    assert [result.translated_text for result in orchestrator.results.results] == [
        "A"
    ]


class _SecondRunWaits(StreamTransportProtocol):
    def __init__(self) -> None:
        self.calls: list[StageName] = []
        self.opened = asyncio.Event()
        self.release = asyncio.Event()

    def open_stream(
        self, stage: StageName, request: StageRequest
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append(stage)
        return self._stream(len(self.calls))

    async def _stream(self, call: int) -> AsyncIterator[StreamEvent]:
        if call > 1:
            self.opened.set()
            await self.release.wait()
        for event in _translation_script("A"):
            yield event


class _InterleavingLogSink(StubLogSink):
    def __init__(self, transport: _SecondRunWaits) -> None:
        super().__init__()
        self.transport = transport
        self.orchestrator: PipelineOrchestrator | None = None
        self.other: asyncio.Task[StageStatus] | None = None

    async def emit_log(self, entry: LogEntry) -> None:
        await super().emit_log(entry)
        if entry.event == "stage_chained" and self.other is None:
            assert self.orchestrator is not None
            self.other = asyncio.create_task(self._translate(self.orchestrator))
            await self.transport.opened.wait()

    async def _translate(self, orchestrator: PipelineOrchestrator) -> StageStatus:
        state = await orchestrator.start_translation(_selection("a"))
        return StageStatus(state.status)


@pytest.mark.asyncio
async def test_chained_stage_skipped_when_slot_taken(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """A chained stage that finds another run active is skipped, not raised."""
    transport = _SecondRunWaits()
    log_sink = _InterleavingLogSink(transport)
    orchestrator = _orchestrator(
        transport,
        clock,
        id_factory,
        config=PipelineConfig(auto_extract_glossary=True),
        log_sink=log_sink,
    )
    log_sink.orchestrator = orchestrator

    state = await orchestrator.start_translation(_selection("a"))

    assert state.status == StageStatus.DONE
    skipped = [entry for entry in log_sink.entries if entry.event == "stage_skipped"]
    assert len(skipped) == 1
    assert skipped[0].stage == StageName.GLOSSARY
    assert transport.calls == [StageName.TRANSLATION, StageName.TRANSLATION]

    orchestrator.config.auto_extract_glossary = False
    transport.release.set()
    assert log_sink.other is not None
    assert await asyncio.wait_for(log_sink.other, timeout=1) == StageStatus.DONE


@pytest.mark.asyncio
async def test_new_translation_clears_downstream_but_keeps_overlays(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Starting a translation resets results, glossary and inconsistencies."""
    transport = StubTransport({
        StageName.TRANSLATION: _translation_script("ONE", "TWO", "THREE"),
        StageName.GLOSSARY: _glossary_script(),
        StageName.STANDARDIZATION_ANALYSIS: _analysis_script(),
    })
    orchestrator = _orchestrator(
        transport, clock, id_factory, config=PipelineConfig(auto_extract_glossary=True)
    )
    await orchestrator.start_translation(_selection())
    result_id = orchestrator.results.results[0].id
    orchestrator.start_editing(result_id)
    orchestrator.save_edit("kept")
    orchestrator.config.auto_extract_glossary = False

    await orchestrator.start_translation(_selection())

    assert len(orchestrator.glossary) == 0
    assert len(orchestrator.inconsistencies) == 0
    assert orchestrator.results.overlays == {result_id: "kept"}


@pytest.mark.asyncio
async def test_reset_stages(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Stage resets clear their own store; reset_all clears everything."""
    transport = StubTransport({StageName.TRANSLATION: _translation_script("A")})
    orchestrator = _orchestrator(transport, clock, id_factory)
    await orchestrator.start_translation(_selection("a"))
    result_id = orchestrator.results.results[0].id
    orchestrator.start_editing(result_id)
    orchestrator.save_edit("mine")

    orchestrator.reset(StageName.TRANSLATION)

    assert len(orchestrator.results) == 0
    assert orchestrator.results.overlays == {result_id: "mine"}
    assert orchestrator.state(StageName.TRANSLATION).status == StageStatus.IDLE

    orchestrator.reset_all()

    assert orchestrator.snapshot().overlays == {}


@pytest.mark.asyncio
async def test_write_back_uses_overlay_text(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Write-back writes what the user currently sees."""
    transport = StubTransport({
        StageName.TRANSLATION: _translation_script("ONE", "TWO", "THREE")
    })
    log_sink = StubLogSink()
    orchestrator = _orchestrator(transport, clock, id_factory, log_sink=log_sink)
    document = InMemoryDocument(SOURCE)
    await orchestrator.start_translation(document.selection(1, 3))
    second = orchestrator.results.results[1].id
    orchestrator.start_editing(second)
    orchestrator.save_edit("TWO\nfixed")

    result = await orchestrator.write_back(document)

    assert result.success
    assert document.get_text() == "ONE\n\nTWO fixed\nTHREE"
    assert log_sink.events()[-1] == "write_back_completed"


@pytest.mark.asyncio
async def test_progress_updates_are_emitted(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """Every applied event produces a progress update."""
    transport = StubTransport({StageName.TRANSLATION: _translation_script("A")})
    progress_sink = StubProgressSink()
    orchestrator = _orchestrator(
        transport, clock, id_factory, progress_sink=progress_sink
    )

    await orchestrator.start_translation(_selection("a"))

    assert [update.event for update in progress_sink.updates] == [
        "stage_started",
        "stage_progress",
        "stage_progress",
        "stage_progress",
        "stage_completed",
    ]
    assert progress_sink.updates[-1].progress_percent == 100


@pytest.mark.asyncio
async def test_stream_without_completion_is_flagged(
    clock: Callable[[], Timestamp], id_factory: Callable[[], str]
) -> None:
    """A stream that simply closes still completes, with a warning entry."""
    script = events({
        "type": "batch_completed",
        "batch_results": [{"original_text": "a", "translated_text": "A"}],
    })
    log_sink = StubLogSink()
    orchestrator = _orchestrator(
        StubTransport({StageName.TRANSLATION: script}),
        clock,
        id_factory,
        log_sink=log_sink,
    )

    state = await orchestrator.start_translation(_selection("a"))

    assert state.status == StageStatus.DONE
    assert log_sink.events() == ["stage_started", "stage_completed"]
    assert log_sink.entries[-1].level == "warn"
    assert log_sink.entries[-1].data == {
        "status": "done",
        "committed_count": 1,
        "saw_completion": False,
    }
