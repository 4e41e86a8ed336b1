"""Log and progress sink adapters."""

from tessera_io.storage.log_sink import (
    CompositeLogSink,
    ConsoleLogSink,
    FileLogSink,
    InMemoryLogSink,
    LevelFilterLogSink,
    NoopLogSink,
    RedactingLogSink,
    build_log_sink,
)
from tessera_io.storage.progress_sink import (
    CompositeProgressSink,
    FileSystemProgressSink,
)

__all__ = [
    "CompositeLogSink",
    "CompositeProgressSink",
    "ConsoleLogSink",
    "FileLogSink",
    "FileSystemProgressSink",
    "InMemoryLogSink",
    "LevelFilterLogSink",
    "NoopLogSink",
    "RedactingLogSink",
    "build_log_sink",
]
