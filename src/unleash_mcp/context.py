"""Shared execution context handed to every tool and resource reader."""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Any, Protocol

from .config import Config
from .errors import MissingConfigurationError
from .logging_setup import Logger
from .progress import ProgressToken


class ProgressNotifier(Protocol):
    def __call__(
        self,
        progress_token: ProgressToken | None,
        progress: float,
        total: float,
        message: str | None = None,
    ) -> Awaitable[None]: ...


@dataclass(frozen=True, slots=True)
class ServerContext:
    """Configuration, remote client, logger and progress emitter in one handle.

    Built once per process after configuration validation; never mutated.
    """

    config: Config
    client: Any
    logger: Logger
    notify_progress: ProgressNotifier


def build_context(
    config: Config, client: Any, logger: Logger, notify_progress: ProgressNotifier
) -> ServerContext:
    """Compose the execution context, failing fast on incomplete collaborators."""
    missing = [
        name
        for name, value in (
            ("client", client),
            ("logger", logger),
            ("notify_progress", notify_progress),
        )
        if value is None
    ]
    if missing:
        raise ValueError(f"Cannot build server context without: {', '.join(missing)}")
    return ServerContext(
        config=config, client=client, logger=logger, notify_progress=notify_progress
    )


def ensure_project_id(provided: str | None, default: str | None) -> str:
    """Return the provided project id or the configured default."""
    if provided:
        return provided
    if default:
        return default
    raise MissingConfigurationError("Project ID", "UNLEASH_DEFAULT_PROJECT")


def ensure_environment(provided: str | None, default: str | None) -> str:
    if provided:
        return provided
    if default:
        return default
    raise MissingConfigurationError("Environment", "UNLEASH_DEFAULT_ENVIRONMENT")
