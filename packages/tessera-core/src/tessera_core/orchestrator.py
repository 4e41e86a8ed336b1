"""Pipeline orchestrator sequencing the four service stages."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from uuid import uuid4

from pydantic import ValidationError

from tessera_core.consumer import (
    CancellationToken,
    EventCommitter,
    StreamEventConsumer,
    now_timestamp,
)
from tessera_core.glossary import GlossaryStore, InconsistencyStore
from tessera_core.ports.document import DocumentProtocol
from tessera_core.ports.orchestrator import (
    LogSinkProtocol,
    OrchestrationError,
    OrchestrationErrorCode,
    OrchestrationErrorDetails,
    OrchestrationErrorInfo,
    ProgressSinkProtocol,
    build_stage_cancelled_log,
    build_stage_chained_log,
    build_stage_completed_log,
    build_stage_failed_log,
    build_stage_skipped_log,
    build_stage_started_log,
    build_write_back_log,
)
from tessera_core.ports.transport import StreamTransportProtocol
from tessera_core.reconciler import LineReconciler
from tessera_core.results import ResultStore
from tessera_core.segments import extract_segments
from tessera_schemas.config import PipelineConfig
from tessera_schemas.diff import ResultView
from tessera_schemas.document import (
    DocumentSelection,
    WriteBackOptions,
    WriteBackResult,
)
from tessera_schemas.logs import LogEntry
from tessera_schemas.pipeline import PipelineSnapshot
from tessera_schemas.primitives import (
    PIPELINE_STAGE_ORDER,
    PlaceholderType,
    RunId,
    StageName,
    StageStatus,
    Timestamp,
)
from tessera_schemas.progress import StageState
from tessera_schemas.requests import (
    DEFAULT_APPLY_RULES,
    MAX_GLOSSARY_BATCH_SIZE,
    ApplyStandardizationRequest,
    GlossaryExtractionRequest,
    StageRequest,
    StandardizationAnalysisRequest,
    TranslationRequest,
)
from tessera_schemas.results import (
    GlossaryTerm,
    Segment,
    StandardizationItem,
    TextPair,
)
from tessera_schemas.stream import (
    BatchCompletedEvent,
    CompletionEvent,
    GlossaryBatchCompletedEvent,
    RetranslationCompletedEvent,
    StreamEvent,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _ActiveStage:
    stage: StageName
    consumer: StreamEventConsumer


class PipelineOrchestrator:
    """Sequences translation, glossary and standardization stages.

    At most one stage runs at a time. Stores are only mutated by commit
    events of the active stage, by explicit user edits, or by resets.
    """

    def __init__(
        self,
        transport: StreamTransportProtocol,
        config: PipelineConfig | None = None,
        *,
        log_sink: LogSinkProtocol | None = None,
        progress_sink: ProgressSinkProtocol | None = None,
        reconciler: LineReconciler | None = None,
        clock: Callable[[], Timestamp] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            transport: Service transport used by every stage.
            config: Pipeline configuration; defaults apply when omitted.
            log_sink: Optional log sink.
            progress_sink: Optional progress sink.
            reconciler: Optional line reconciler for write-back.
            clock: Optional timestamp provider.
            id_factory: Optional run identifier factory.
        """
        self._transport = transport
        self._config = config or PipelineConfig()
        self._log_sink = log_sink
        self._progress_sink = progress_sink
        self._clock = clock or now_timestamp
        self._new_id = id_factory or _new_run_id
        write_back = self._config.write_back
        self._reconciler = reconciler or LineReconciler(
            WriteBackOptions(
                placeholder_type=PlaceholderType(write_back.placeholder_type),
                custom_placeholder=write_back.custom_placeholder,
            )
        )
        self._results = ResultStore()
        self._glossary = GlossaryStore(self._config.glossary_merge)
        self._inconsistencies = InconsistencyStore()
        self._segments: list[Segment] = []
        self._standalone_pairs: list[TextPair] = []
        self._states: dict[StageName, StageState] = {
            stage: StageState(stage=stage) for stage in PIPELINE_STAGE_ORDER
        }
        self._active: _ActiveStage | None = None

    @property
    def config(self) -> PipelineConfig:
        """Pipeline configuration."""
        return self._config

    @property
    def results(self) -> ResultStore:
        """Result store with the edit overlay."""
        return self._results

    @property
    def glossary(self) -> GlossaryStore:
        """Extracted glossary terms."""
        return self._glossary

    @property
    def inconsistencies(self) -> InconsistencyStore:
        """Inconsistent-translation clusters and selections."""
        return self._inconsistencies

    @property
    def segments(self) -> list[Segment]:
        """Segments of the latest translation run (copies)."""
        return [segment.model_copy(deep=True) for segment in self._segments]

    @property
    def active_stage(self) -> StageName | None:
        """Stage currently running, if any."""
        return self._active.stage if self._active else None

    def state(self, stage: StageName) -> StageState:
        """Return the live state of a stage."""
        if self._active is not None and self._active.stage == stage:
            return self._active.consumer.state
        return self._states[stage]

    async def start_translation(self, selection: DocumentSelection) -> StageState:
        """Translate a selection line by line.

        Translation results, glossary and inconsistencies of the previous
        run are cleared; user overlays are kept.

        Args:
            selection: Selected text plus its captured line map.

        Returns:
            StageState: Final translation state.

        Raises:
            OrchestrationError: If a stage is running, nothing is selected or
                the request is invalid.
        """
        stage = StageName.TRANSLATION
        self._ensure_idle(stage)
        segments = extract_segments(selection, self._config.segment_mismatch)
        if not segments:
            raise _missing(stage, "selection", "No text selected for translation")
        settings = self._config.translation
        request = _build_request(
            stage,
            lambda: TranslationRequest(
                texts=[segment.original_text for segment in segments],
                target_language=settings.target_language,
                text_type=settings.text_type,
                model_name=settings.model_name,
                batch_size=settings.batch_size,
                user_rules=settings.user_rules,
            ),
        )

        self._segments = segments
        self._results.clear_results()
        self._glossary.clear()
        self._inconsistencies.clear()
        self._standalone_pairs = []
        run_token = self._new_id()

        def commit(event: StreamEvent) -> None:
            if isinstance(event, BatchCompletedEvent):
                self._results.commit_batch(
                    event,
                    self._segments,
                    run_token=run_token,
                    timestamp=self._clock(),
                    model_name=settings.model_name,
                    text_type=settings.text_type,
                )

        state, run_id = await self._run_stage(stage, request, commit, len(segments))
        if state.status == StageStatus.DONE and self._config.auto_extract_glossary:
            if len(self._results):
                await self._chain(run_id, stage, StageName.GLOSSARY)
            else:
                await self._emit_log(
                    build_stage_skipped_log(
                        self._clock(),
                        run_id,
                        stage,
                        StageName.GLOSSARY,
                        "No translation results available for glossary extraction",
                    )
                )
        return state

    async def start_glossary_extraction(self) -> StageState:
        """Extract a glossary from the current (overlay-aware) results.

        Returns:
            StageState: Final glossary state.

        Raises:
            OrchestrationError: If a stage is running or there are no results.
        """
        stage = StageName.GLOSSARY
        self._ensure_idle(stage)
        pairs = self._results.current_pairs()
        if not pairs:
            raise _missing(
                stage,
                "translation_results",
                "No translation results available for glossary extraction",
            )
        return await self._run_glossary(pairs)

    async def start_standalone_glossary_extraction(
        self, pairs: Sequence[TextPair]
    ) -> StageState:
        """Extract a glossary from text pairs that did not come from a run.

        The pairs are kept as the analysis input when no translation results
        exist.

        Args:
            pairs: Original/translated pairs, e.g. from ``extract_text_pairs``.

        Returns:
            StageState: Final glossary state.

        Raises:
            OrchestrationError: If a stage is running or no pairs are given.
        """
        stage = StageName.GLOSSARY
        self._ensure_idle(stage)
        if not pairs:
            raise _missing(
                stage, "text_pairs", "No text pairs available for glossary extraction"
            )
        self._standalone_pairs = [pair.model_copy(deep=True) for pair in pairs]
        return await self._run_glossary(self._standalone_pairs)

    async def start_standardization_analysis(self) -> StageState:
        """Detect source terms translated inconsistently.

        Returns:
            StageState: Final analysis state.

        Raises:
            OrchestrationError: If a stage is running, or there is no text or
                glossary to analyze.
        """
        stage = StageName.STANDARDIZATION_ANALYSIS
        self._ensure_idle(stage)
        pairs = self._analysis_pairs()
        glossary = _request_glossary(self._glossary.terms)
        if not pairs or not glossary:
            raise _missing(
                stage,
                "translation_results" if not pairs else "glossary_terms",
                "Cannot check inconsistencies: No text available for analysis.",
            )
        request = _build_request(
            stage,
            lambda: StandardizationAnalysisRequest(
                items=_standardization_items(pairs, glossary)
            ),
        )
        self._inconsistencies.clear()

        def commit(event: StreamEvent) -> None:
            if isinstance(event, CompletionEvent) and event.inconsistent_terms:
                self._inconsistencies.replace(event.inconsistent_terms)

        state, _ = await self._run_stage(stage, request, commit, len(pairs))
        return state

    async def start_standardization_apply(self) -> StageState:
        """Re-translate results using the chosen standardizations.

        Never started automatically.

        Returns:
            StageState: Final apply state.

        Raises:
            OrchestrationError: If a stage is running, or there are no
                results or inconsistencies.
        """
        stage = StageName.STANDARDIZATION_APPLY
        self._ensure_idle(stage)
        pairs = self._results.current_pairs()
        if not pairs:
            raise _missing(
                stage,
                "translation_results",
                "No translation results available for standardization",
            )
        if not len(self._inconsistencies):
            raise _missing(
                stage,
                "inconsistent_terms",
                "No inconsistent terms available for standardization",
            )
        glossary = _request_glossary(self._glossary.terms)
        settings = self._config.translation
        request = _build_request(
            stage,
            lambda: ApplyStandardizationRequest(
                items=_standardization_items(pairs, glossary),
                standardization_pairs=self._inconsistencies.pairs(),
                model_name=settings.model_name,
                user_rules=settings.user_rules or DEFAULT_APPLY_RULES,
            ),
        )

        def commit(event: StreamEvent) -> None:
            if (
                isinstance(event, RetranslationCompletedEvent)
                and event.updated_item is not None
            ):
                self._results.apply_retranslation(event.index, event.updated_item)

        state, _ = await self._run_stage(stage, request, commit, len(pairs))
        return state

    def select_standardization(self, source_word: str, translation: str) -> None:
        """Choose the translation to enforce for an inconsistent term."""
        self._inconsistencies.select(source_word, translation)

    def stop(self, stage: StageName | None = None) -> bool:
        """Cancel the active stage, interrupting a read that is still waiting.

        Args:
            stage: Stage to stop; any active stage when omitted.

        Returns:
            bool: True when a running stage was cancelled.
        """
        if self._active is None:
            return False
        if stage is not None and self._active.stage != stage:
            return False
        self._active.consumer.token.cancel()
        return True

    def reset(self, stage: StageName) -> None:
        """Stop a stage and clear the store it owns.

        Translation reset drops results and segments but keeps overlays;
        standardization apply reset only clears its state.
        """
        self.stop(stage)
        if stage == StageName.TRANSLATION:
            self._results.clear_results()
            self._segments = []
        elif stage == StageName.GLOSSARY:
            self._glossary.clear()
            self._standalone_pairs = []
        elif stage == StageName.STANDARDIZATION_ANALYSIS:
            self._inconsistencies.clear()
        self._states[stage] = StageState(stage=stage)

    def reset_all(self) -> None:
        """Stop any stage and clear every store, overlays included."""
        self.stop()
        self._results.clear()
        self._glossary.clear()
        self._inconsistencies.clear()
        self._segments = []
        self._standalone_pairs = []
        self._states = {
            stage: StageState(stage=stage) for stage in PIPELINE_STAGE_ORDER
        }

    def snapshot(self) -> PipelineSnapshot:
        """Return a deep copy of every stage state and store."""
        return PipelineSnapshot(
            active_stage=self.active_stage,
            stages={stage: self.state(stage) for stage in PIPELINE_STAGE_ORDER},
            results=self._results.current_results(),
            overlays=self._results.overlays,
            glossary_terms=self._glossary.terms,
            inconsistent_terms=self._inconsistencies.terms,
            selections=self._inconsistencies.selections,
            standalone_pairs=[
                pair.model_copy(deep=True) for pair in self._standalone_pairs
            ],
        )

    def start_editing(self, result_id: str) -> str:
        """Open an edit buffer for a result; returns its seeded text."""
        return self._results.start_editing(result_id)

    def save_edit(self, text: str | None = None) -> str:
        """Commit the edit buffer as an overlay; returns the result id."""
        return self._results.save_edit(text)

    def cancel_editing(self) -> None:
        """Discard the edit buffer."""
        self._results.cancel_editing()

    def reset_to_original(self, result_id: str) -> None:
        """Drop a result's overlay."""
        self._results.reset_to_original(result_id)

    def view(self, result_id: str) -> ResultView:
        """Return the presentation state of a result."""
        return self._results.view(result_id)

    async def write_back(
        self,
        document: DocumentProtocol,
        options: WriteBackOptions | None = None,
    ) -> WriteBackResult:
        """Write the current (overlay-aware) results into a document.

        Args:
            document: Document receiving the edits.
            options: Optional override of the configured write-back options.

        Returns:
            WriteBackResult: Outcome of the write-back.
        """
        result = self._reconciler.write_back(
            document, self._results.current_results(), options
        )
        await self._emit_log(
            build_write_back_log(self._clock(), self._new_id(), result)
        )
        return result

    async def _run_glossary(self, pairs: list[TextPair]) -> StageState:
        stage = StageName.GLOSSARY
        settings = self._config.translation
        request = _build_request(
            stage,
            lambda: GlossaryExtractionRequest(
                items=pairs,
                model_name=settings.model_name,
                batch_size=min(settings.batch_size, MAX_GLOSSARY_BATCH_SIZE),
            ),
        )
        self._glossary.clear()

        def commit(event: StreamEvent) -> None:
            if isinstance(event, BatchCompletedEvent):
                self._glossary.add_terms(
                    term for item in event.batch_results for term in item.glossary_terms
                )
            elif isinstance(event, GlossaryBatchCompletedEvent):
                self._glossary.add_terms(event.terms)
            elif isinstance(event, CompletionEvent) and event.glossary_terms:
                self._glossary.replace_terms(event.glossary_terms)

        state, run_id = await self._run_stage(stage, request, commit, len(pairs))
        if state.status == StageStatus.DONE:
            next_stage = StageName.STANDARDIZATION_ANALYSIS
            if self._analysis_pairs() and _request_glossary(self._glossary.terms):
                await self._chain(run_id, stage, next_stage)
            else:
                await self._emit_log(
                    build_stage_skipped_log(
                        self._clock(),
                        run_id,
                        stage,
                        next_stage,
                        "No glossary terms available for standardization analysis",
                    )
                )
        return state

    async def _run_stage(
        self,
        stage: StageName,
        request: StageRequest,
        committer: EventCommitter,
        item_count: int,
    ) -> tuple[StageState, RunId]:
        run_id = self._new_id()
        consumer = StreamEventConsumer(
            stage,
            committer,
            run_id=run_id,
            token=CancellationToken(),
            progress_sink=self._progress_sink,
            clock=self._clock,
        )
        self._active = _ActiveStage(stage=stage, consumer=consumer)
        await self._emit_log(
            build_stage_started_log(self._clock(), run_id, stage, item_count)
        )
        try:
            state = await consumer.consume(
                self._transport.open_stream(stage, request)
            )
        finally:
            self._active = None
        self._states[stage] = state

        if state.status == StageStatus.ABORTED:
            await self._emit_log(
                build_stage_cancelled_log(self._clock(), run_id, stage)
            )
        elif state.status == StageStatus.ERRORED:
            transport_error = consumer.transport_error
            error_code = (
                OrchestrationErrorCode.TRANSPORT_FAILED
                if transport_error is not None
                else None
            )
            await self._emit_log(
                build_stage_failed_log(
                    self._clock(),
                    run_id,
                    stage,
                    state.error_message or "Unknown error",
                    error_code=error_code,
                    committed_count=state.committed_count,
                )
            )
        else:
            await self._emit_log(
                build_stage_completed_log(
                    self._clock(),
                    run_id,
                    stage,
                    state.committed_count,
                    consumer.saw_completion,
                )
            )
        return state, run_id

    async def _chain(
        self, run_id: RunId, stage: StageName, next_stage: StageName
    ) -> None:
        await self._emit_log(
            build_stage_chained_log(self._clock(), run_id, stage, next_stage)
        )
        try:
            if next_stage == StageName.GLOSSARY:
                await self.start_glossary_extraction()
            elif next_stage == StageName.STANDARDIZATION_ANALYSIS:
                await self.start_standardization_analysis()
        except OrchestrationError as exc:
            if exc.info.code != OrchestrationErrorCode.STAGE_BUSY:
                raise
            logger.info("Skipping chained %s: %s", next_stage, exc.info.message)
            await self._emit_log(
                build_stage_skipped_log(
                    self._clock(), run_id, stage, next_stage, exc.info.message
                )
            )

    def _analysis_pairs(self) -> list[TextPair]:
        pairs = self._results.current_pairs()
        if pairs:
            return pairs
        return [pair.model_copy(deep=True) for pair in self._standalone_pairs]

    def _ensure_idle(self, stage: StageName) -> None:
        if self._active is None:
            return
        raise OrchestrationError(
            OrchestrationErrorInfo(
                code=OrchestrationErrorCode.STAGE_BUSY,
                message=(
                    f"Cannot start {stage} while {self._active.stage} is running"
                ),
                details=OrchestrationErrorDetails(
                    stage=stage, active_stage=self._active.stage
                ),
            )
        )

    async def _emit_log(self, entry: LogEntry) -> None:
        if self._log_sink is None:
            return
        await self._log_sink.emit_log(entry)


def _new_run_id() -> str:
    return uuid4().hex


def _missing(stage: StageName, dependency: str, message: str) -> OrchestrationError:
    return OrchestrationError(
        OrchestrationErrorInfo(
            code=OrchestrationErrorCode.MISSING_DEPENDENCY,
            message=message,
            details=OrchestrationErrorDetails(stage=stage, missing=[dependency]),
        )
    )


def _build_request[RequestT: StageRequest](
    stage: StageName, factory: Callable[[], RequestT]
) -> RequestT:
    try:
        return factory()
    except ValidationError as exc:
        raise OrchestrationError(
            OrchestrationErrorInfo(
                code=OrchestrationErrorCode.INVALID_REQUEST,
                message=f"Invalid {stage} request",
                details=OrchestrationErrorDetails(stage=stage, reason=str(exc)),
            )
        ) from exc


def _request_glossary(terms: list[GlossaryTerm]) -> list[GlossaryTerm]:
    return [
        GlossaryTerm(source_term=term.source_term, translated_term=term.translated_term)
        for term in terms
        if not term.is_blank
    ]


def _standardization_items(
    pairs: list[TextPair], glossary: list[GlossaryTerm]
) -> list[StandardizationItem]:
    return [
        StandardizationItem(
            original_text=pair.original_text,
            translated_text=pair.translated_text,
            glossary=[term.model_copy() for term in glossary],
        )
        for pair in pairs
    ]
