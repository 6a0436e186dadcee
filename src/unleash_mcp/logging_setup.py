"""Instance-scoped loguru logging that never touches the MCP protocol stream."""

from __future__ import annotations

import contextlib
import sys
import uuid
from pathlib import Path
from typing import Any, Protocol, TextIO

from loguru import logger

LOG_LEVELS: dict[str, str] = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "error": "ERROR",
}

LOG_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} [{level}] {message}"


class Logger(Protocol):
    """Logging capability handed to tools through the execution context."""

    def debug(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class ServerLogger:
    """Level-filtered logger writing to exactly one sink.

    The sink is an append-only file when ``log_file`` is set, otherwise
    ``stream`` (stderr by default). stdout carries the MCP protocol and is
    rejected outright.
    """

    def __init__(
        self,
        level: str = "info",
        log_file: Path | str | None = None,
        *,
        stream: TextIO | None = None,
    ) -> None:
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {level!r}")

        target = stream if stream is not None else sys.stderr
        if log_file is None and target is sys.stdout:
            raise ValueError("Logging to stdout would corrupt the MCP protocol stream")

        self.level = level
        self._sink_id = uuid.uuid4().hex
        self._logger = logger.bind(sink_id=self._sink_id)

        # loguru ships a stderr handler (id 0) that ignores both the level and the filter.
        with contextlib.suppress(ValueError):
            logger.remove(0)

        sink: Any = str(Path(log_file).expanduser()) if log_file is not None else target
        options: dict[str, Any] = {
            "level": LOG_LEVELS[level],
            "format": LOG_FORMAT,
            "filter": self._owns_record,
            "colorize": False,
        }
        if log_file is not None:
            options["mode"] = "a"
        self._handler_id: int | None = logger.add(sink, **options)

    def _owns_record(self, record: Any) -> bool:
        return bool(record["extra"].get("sink_id") == self._sink_id)

    def debug(self, message: str) -> None:
        self._logger.opt(depth=1).debug(message)

    def info(self, message: str) -> None:
        self._logger.opt(depth=1).info(message)

    def warning(self, message: str) -> None:
        self._logger.opt(depth=1).warning(message)

    def error(self, message: str) -> None:
        self._logger.opt(depth=1).error(message)

    def close(self) -> None:
        """Detach this logger's sink; further calls become no-ops."""
        if self._handler_id is not None:
            logger.remove(self._handler_id)
            self._handler_id = None


def create_logger(level: str, log_file: Path | str | None = None) -> ServerLogger:
    """Build the process logger from validated configuration values."""
    return ServerLogger(level=level, log_file=log_file)
