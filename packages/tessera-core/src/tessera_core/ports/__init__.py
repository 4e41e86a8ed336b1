"""Port interfaces for tessera core."""

from tessera_core.ports.document import DocumentProtocol
from tessera_core.ports.orchestrator import (
    LogSinkProtocol,
    OrchestrationError,
    OrchestrationErrorCode,
    OrchestrationErrorDetails,
    OrchestrationErrorInfo,
    ProgressSinkProtocol,
    build_redaction_applied_log,
    build_stage_cancelled_log,
    build_stage_chained_log,
    build_stage_completed_log,
    build_stage_failed_log,
    build_stage_skipped_log,
    build_stage_started_log,
    build_write_back_log,
)
from tessera_core.ports.transport import (
    StreamTransportProtocol,
    TransportError,
    TransportErrorCode,
    TransportErrorDetails,
    TransportErrorInfo,
)

__all__ = [
    "DocumentProtocol",
    "LogSinkProtocol",
    "OrchestrationError",
    "OrchestrationErrorCode",
    "OrchestrationErrorDetails",
    "OrchestrationErrorInfo",
    "ProgressSinkProtocol",
    "StreamTransportProtocol",
    "TransportError",
    "TransportErrorCode",
    "TransportErrorDetails",
    "TransportErrorInfo",
    "build_redaction_applied_log",
    "build_stage_cancelled_log",
    "build_stage_chained_log",
    "build_stage_completed_log",
    "build_stage_failed_log",
    "build_stage_skipped_log",
    "build_stage_started_log",
    "build_write_back_log",
]
