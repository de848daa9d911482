"""Structured logging for extraction runs.

Every line carries optional key=value context (row, table, provider, error)
so a run can be followed with grep. Console output is terse; the optional
run log file gets full timestamps and the level name.

One PipelineLogger is created by whoever builds the orchestrator and passed
in; there is no process-wide instance.
"""

import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any

_CONSOLE_FORMAT = logging.Formatter("%(asctime)s %(message)s", datefmt="%H:%M:%S")
_FILE_FORMAT = logging.Formatter("%(asctime)s.%(msecs)03d %(levelname)-7s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

_MAX_VALUE_CHARS = 80


def format_context(context: dict[str, Any]) -> str:
    """Render context as `k=v` pairs, shortening long values."""
    pairs = []
    for key, value in context.items():
        if value is None:
            continue
        text = str(value).replace("\n", " ")
        if len(text) > _MAX_VALUE_CHARS:
            text = text[:_MAX_VALUE_CHARS - 3] + "..."
        pairs.append(f"{key}={text}")
    return " ".join(pairs)


class _ConsoleHandler(logging.StreamHandler):
    """Marks the console handler so repeated PipelineLoggers reuse it."""


class PipelineLogger:
    """Logger for the extraction pipeline with per-row timing."""

    def __init__(self, name: str = "docgrid", verbose: bool = False, log_dir: str | Path | None = None):
        """Initialize the pipeline logger.

        Args:
            name: Name of the underlying stdlib logger.
            verbose: Show DEBUG lines on the console.
            log_dir: Directory for a per-run log file. None disables file output.
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        self.verbose = verbose
        self._started: dict[str, float] = {}
        self._file_handler: logging.FileHandler | None = None

        if not any(isinstance(h, _ConsoleHandler) for h in self.logger.handlers):
            console = _ConsoleHandler(sys.stdout)
            console.setFormatter(_CONSOLE_FORMAT)
            self.logger.addHandler(console)
        for handler in self.logger.handlers:
            if isinstance(handler, _ConsoleHandler):
                handler.setLevel(logging.DEBUG if verbose else logging.INFO)

        if log_dir:
            directory = Path(log_dir)
            directory.mkdir(parents=True, exist_ok=True)
            path = directory / f"extract_{datetime.now():%Y%m%d_%H%M%S}.log"
            self._file_handler = logging.FileHandler(path, encoding="utf-8")
            self._file_handler.setFormatter(_FILE_FORMAT)
            self._file_handler.setLevel(logging.DEBUG)
            self.logger.addHandler(self._file_handler)

    @property
    def log_file(self) -> Path | None:
        if self._file_handler is None:
            return None
        return Path(self._file_handler.baseFilename)

    def _emit(self, level: int, message: str, context: dict[str, Any]) -> None:
        rendered = format_context(context)
        self.logger.log(level, f"{message} | {rendered}" if rendered else message)

    def debug(self, message: str, **context):
        self._emit(logging.DEBUG, message, context)

    def info(self, message: str, **context):
        self._emit(logging.INFO, message, context)

    def warning(self, message: str, **context):
        self._emit(logging.WARNING, message, context)

    def error(self, message: str, exc: BaseException | None = None, **context):
        if exc is not None:
            context["exc"] = f"{type(exc).__name__}: {exc}"
        self._emit(logging.ERROR, message, context)

    def start_extraction(self, row_id: str, provider: str, **context):
        """Log the start of one row's extraction and start its timer."""
        self._started[row_id] = time.monotonic()
        self._emit(logging.INFO, f"row {row_id}: extracting via {provider}", context)

    def end_extraction(self, row_id: str, status: str, **context):
        """Log a row's final status with the time since start_extraction."""
        started = self._started.pop(row_id, None)
        if started is not None:
            context["elapsed"] = f"{time.monotonic() - started:.1f}s"
        level = logging.WARNING if status == "failed" else logging.INFO
        self._emit(level, f"row {row_id}: {status}", context)

    def close(self):
        """Detach and close the run log file, if one is open."""
        if self._file_handler is not None:
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()
            self._file_handler = None
