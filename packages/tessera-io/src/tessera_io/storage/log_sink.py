"""Log sinks for stage, chaining and write-back events."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from tessera_core.consumer import now_timestamp
from tessera_core.ports.orchestrator import (
    LogSinkProtocol,
    build_redaction_applied_log,
)
from tessera_io.storage.progress_sink import append_jsonl
from tessera_schemas.config import LoggingConfig, LogSinkConfig
from tessera_schemas.logs import LogEntry
from tessera_schemas.primitives import LogLevel, LogSinkType

if TYPE_CHECKING:
    from tessera_schemas.redaction import Redactor

_LEVEL_RANK: dict[str, int] = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
}


class FileLogSink(LogSinkProtocol):
    """Appends entries to a JSONL file, one line per entry."""

    def __init__(self, path: str | Path) -> None:
        """Initialize the sink with the JSONL file path."""
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """JSONL file receiving the entries."""
        return self._path

    async def emit_log(self, entry: LogEntry) -> None:
        """Append the entry without blocking the event loop."""
        await asyncio.to_thread(append_jsonl, self._path, entry)


class ConsoleLogSink(LogSinkProtocol):
    """Writes JSONL entries to a text stream, stderr by default."""

    def __init__(self, stream: TextIO | None = None) -> None:
        """Initialize the console log sink.

        Args:
            stream: Output stream; resolved to the current stderr per entry
                when omitted.
        """
        self._stream = stream

    async def emit_log(self, entry: LogEntry) -> None:
        """Write one JSON line and flush."""
        stream = self._stream or sys.stderr
        stream.write(entry.model_dump_json(exclude_none=False) + "\n")
        stream.flush()


class InMemoryLogSink(LogSinkProtocol):
    """Keeps entries in memory, e.g. for embedding callers."""

    def __init__(self) -> None:
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> list[LogEntry]:
        """Return a copy of stored log entries."""
        return list(self._entries)

    def events(self, stage: str | None = None) -> list[str]:
        """Return event names in emission order, optionally for one stage."""
        return [
            entry.event
            for entry in self._entries
            if stage is None or entry.stage == stage
        ]

    async def emit_log(self, entry: LogEntry) -> None:
        self._entries.append(entry)


class NoopLogSink(LogSinkProtocol):
    """Drops every entry."""

    async def emit_log(self, entry: LogEntry) -> None:
        return None


class CompositeLogSink(LogSinkProtocol):
    """Forwards each entry to several sinks in order."""

    def __init__(self, sinks: Iterable[LogSinkProtocol]) -> None:
        self._sinks = list(sinks)

    async def emit_log(self, entry: LogEntry) -> None:
        for sink in self._sinks:
            await sink.emit_log(entry)


class LevelFilterLogSink(LogSinkProtocol):
    """Forwards only entries at or above a minimum level."""

    def __init__(self, delegate: LogSinkProtocol, min_level: LogLevel) -> None:
        """Initialize the filter.

        Args:
            delegate: Sink receiving the entries that pass.
            min_level: Lowest level forwarded.
        """
        self._delegate = delegate
        self._min_rank = _LEVEL_RANK[min_level]

    async def emit_log(self, entry: LogEntry) -> None:
        if _LEVEL_RANK[entry.level] >= self._min_rank:
            await self._delegate.emit_log(entry)


class RedactingLogSink(LogSinkProtocol):
    """Masks the service token and bearer headers before forwarding.

    When anything was masked, a ``redaction_applied`` debug entry follows
    the redacted entry so the change stays auditable.
    """

    def __init__(self, delegate: LogSinkProtocol, redactor: Redactor) -> None:
        """Initialize the redacting log sink.

        Args:
            delegate: Sink receiving redacted entries.
            redactor: Redactor holding the secrets to mask.
        """
        self._delegate = delegate
        self._redactor = redactor

    async def emit_log(self, entry: LogEntry) -> None:
        message = self._redactor.redact(entry.message)
        data = None if entry.data is None else self._redactor.redact_dict(entry.data)
        message_redacted = message != entry.message
        data_redacted = data != entry.data
        if not (message_redacted or data_redacted):
            await self._delegate.emit_log(entry)
            return
        await self._delegate.emit_log(
            entry.model_copy(update={"message": message, "data": data})
        )
        await self._delegate.emit_log(
            build_redaction_applied_log(
                now_timestamp(), entry, message_redacted, data_redacted
            )
        )


def build_log_sink(
    logging_config: LoggingConfig,
    *,
    stream: TextIO | None = None,
    redactor: Redactor | None = None,
) -> LogSinkProtocol:
    """Build the sink chain described by the logging configuration.

    Each configured sink is level-filtered first, then wrapped for
    redaction, so redaction notices obey the sink's minimum level too.

    Args:
        logging_config: Logging configuration.
        stream: Optional stream for console sinks.
        redactor: Optional redactor applied before anything is written.

    Returns:
        LogSinkProtocol: A single sink, or a composite of several.
    """
    sinks: list[LogSinkProtocol] = []
    for sink_config in logging_config.sinks:
        if sink_config.type == LogSinkType.NOOP:
            sinks.append(NoopLogSink())
            continue
        sink = _build_leaf_sink(sink_config, stream)
        if _LEVEL_RANK[sink_config.min_level] > _LEVEL_RANK[LogLevel.DEBUG]:
            sink = LevelFilterLogSink(sink, LogLevel(sink_config.min_level))
        if redactor is not None:
            sink = RedactingLogSink(sink, redactor)
        sinks.append(sink)
    if len(sinks) == 1:
        return sinks[0]
    return CompositeLogSink(sinks)


def _build_leaf_sink(
    sink_config: LogSinkConfig, stream: TextIO | None
) -> LogSinkProtocol:
    if sink_config.type == LogSinkType.FILE and sink_config.path is not None:
        return FileLogSink(sink_config.path)
    if sink_config.type == LogSinkType.CONSOLE:
        return ConsoleLogSink(stream)
    raise ValueError(f"Unsupported log sink type: {sink_config.type}")
