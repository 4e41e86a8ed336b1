"""Logging helpers for tessera."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGING_INITIALIZED = False
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(verbosity: str = "info", log_file: Path | None = None) -> None:
    """Configure global logging with console and optional file handlers.

    Args:
        verbosity: Logging verbosity for the console (quiet, info, verbose, debug).
        log_file: Optional path for a debug-level log file.
    """
    global _LOGGING_INITIALIZED

    level_map = {
        "quiet": logging.WARNING,
        "info": logging.INFO,
        "verbose": logging.DEBUG,
        "debug": logging.DEBUG,
    }
    console_level = level_map.get(verbosity.lower(), logging.INFO)

    root = logging.getLogger()
    if not _LOGGING_INITIALIZED:
        root.setLevel(logging.DEBUG)
        root.handlers.clear()

        console_handler = logging.StreamHandler()
        console_handler.setLevel(console_level)
        console_handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(console_handler)
        _LOGGING_INITIALIZED = True
    else:
        for handler in root.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, logging.FileHandler
            ):
                handler.setLevel(console_level)

    if log_file and not any(isinstance(h, logging.FileHandler) for h in root.handlers):
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(file_handler)

    # Keep transport libraries at warning level even in verbose mode.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

