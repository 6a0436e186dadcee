"""Best-effort progress notifications for long-running tool calls."""

from __future__ import annotations

from typing import Any, Protocol

from .logging_setup import Logger

ProgressToken = str | int


class NotificationSink(Protocol):
    """Outbound channel for progress and status notifications."""

    async def send_progress(self, token: ProgressToken, progress: float, total: float) -> None: ...

    async def send_message(self, message: str) -> None: ...


class ProgressEmitter:
    """Emit ``(progress, total)`` then an optional status message for one token.

    Without a token nothing is sent. Delivery is not guaranteed: any sink
    failure is logged at debug level and dropped so the invocation outcome
    never changes. Monotonic progress is the caller's job.
    """

    def __init__(self, sink: NotificationSink, logger: Logger) -> None:
        self._sink = sink
        self._logger = logger

    async def __call__(
        self,
        progress_token: ProgressToken | None,
        progress: float,
        total: float,
        message: str | None = None,
    ) -> None:
        if progress_token is None:
            return

        try:
            await self._sink.send_progress(progress_token, progress, total)
            if message:
                await self._sink.send_message(message)
        except Exception as exc:  # noqa: BLE001 - notifications are best effort
            self._logger.debug(f"Dropped progress notification for {progress_token!r}: {exc}")


class McpNotificationSink:
    """Send notifications through the session of the MCP request being handled."""

    LOGGER_NAME = "unleash-mcp"

    def __init__(self, server: Any) -> None:
        self._server = server

    async def send_progress(self, token: ProgressToken, progress: float, total: float) -> None:
        request = self._server.request_context
        await request.session.send_progress_notification(
            progress_token=token,
            progress=progress,
            total=total,
            related_request_id=request.request_id,
        )

    async def send_message(self, message: str) -> None:
        request = self._server.request_context
        await request.session.send_log_message(
            level="info",
            data=message,
            logger=self.LOGGER_NAME,
            related_request_id=request.request_id,
        )
