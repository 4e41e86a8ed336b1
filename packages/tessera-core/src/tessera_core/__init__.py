"""tessera-core: Stage orchestration, stores and write-back for tessera."""

from tessera_core.consumer import (
    CancellationToken,
    StreamEventConsumer,
    reduce_stage_state,
)
from tessera_core.diff import diff_words, summarize_changes
from tessera_core.glossary import GlossaryStore, InconsistencyStore
from tessera_core.orchestrator import PipelineOrchestrator
from tessera_core.ports import (
    DocumentProtocol,
    LogSinkProtocol,
    OrchestrationError,
    OrchestrationErrorCode,
    ProgressSinkProtocol,
    StreamTransportProtocol,
    TransportError,
    TransportErrorCode,
)
from tessera_core.reconciler import (
    LineReconciler,
    flatten_text,
    has_line_mappings,
    preview_lines,
)
from tessera_core.results import ResultStore
from tessera_core.segments import extract_segments, extract_text_pairs

__version__ = "0.1.0"

__all__ = [
    "CancellationToken",
    "DocumentProtocol",
    "GlossaryStore",
    "InconsistencyStore",
    "LineReconciler",
    "LogSinkProtocol",
    "OrchestrationError",
    "OrchestrationErrorCode",
    "PipelineOrchestrator",
    "ProgressSinkProtocol",
    "ResultStore",
    "StreamEventConsumer",
    "StreamTransportProtocol",
    "TransportError",
    "TransportErrorCode",
    "diff_words",
    "extract_segments",
    "extract_text_pairs",
    "flatten_text",
    "has_line_mappings",
    "preview_lines",
    "reduce_stage_state",
    "summarize_changes",
]
