"""Progress sinks for stage updates."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from pathlib import Path

from tessera_core.ports.orchestrator import ProgressSinkProtocol
from tessera_schemas.base import BaseSchema
from tessera_schemas.events import ProgressEvent
from tessera_schemas.progress import ProgressUpdate

type _ProgressKey = tuple[str, str, float, str | None]


class FileSystemProgressSink(ProgressSinkProtocol):
    """Appends progress updates to a JSONL file.

    Lifecycle updates are always written. A ``stage_progress`` update that
    repeats the previous status, percent and message of its run is dropped,
    since most stream events do not move progress.
    """

    def __init__(self, path: str | Path) -> None:
        """Initialize the progress sink with a file path."""
        self._path = Path(path)
        self._last: dict[str, _ProgressKey] = {}

    async def emit_progress(self, update: ProgressUpdate) -> None:
        """Append the update unless it repeats the previous one."""
        key: _ProgressKey = (
            str(update.stage),
            str(update.status),
            update.progress_percent,
            update.message,
        )
        run_id = str(update.run_id)
        repeated = self._last.get(run_id) == key
        if update.event == ProgressEvent.STAGE_PROGRESS and repeated:
            return
        self._last[run_id] = key
        await asyncio.to_thread(append_jsonl, self._path, update)


class CompositeProgressSink(ProgressSinkProtocol):
    """Forwards each update to several sinks in order."""

    def __init__(self, sinks: Iterable[ProgressSinkProtocol]) -> None:
        self._sinks = list(sinks)

    async def emit_progress(self, update: ProgressUpdate) -> None:
        for sink in self._sinks:
            await sink.emit_progress(update)


def append_jsonl(path: Path, payload: BaseSchema) -> None:
    """Append one model as a JSON line, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    payload_json = payload.model_dump_json(exclude_none=True)
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(payload_json + "\n")
