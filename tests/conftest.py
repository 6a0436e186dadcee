"""Pytest configuration: make ``src/`` importable and provide shared doubles."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Ensure src directory is in path for imports
repo_root = Path(__file__).parent.parent
src_path = repo_root / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from unleash_mcp.client import (  # noqa: E402
    FeatureEnvironment,
    FeatureFlag,
    FeatureStrategy,
    Project,
)
from unleash_mcp.config import Config  # noqa: E402
from unleash_mcp.context import ServerContext, build_context  # noqa: E402
from unleash_mcp.progress import ProgressEmitter  # noqa: E402


class RecordingLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, str]] = []

    def debug(self, message: str) -> None:
        self.records.append(("debug", message))

    def info(self, message: str) -> None:
        self.records.append(("info", message))

    def warning(self, message: str) -> None:
        self.records.append(("warning", message))

    def error(self, message: str) -> None:
        self.records.append(("error", message))

    def lines(self, level: str) -> list[str]:
        return [message for record_level, message in self.records if record_level == level]


class CapturingSink:
    def __init__(self, fail_with: Exception | None = None) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail_with = fail_with

    async def send_progress(self, token: Any, progress: float, total: float) -> None:
        self.calls.append(("progress", token, progress, total))
        if self.fail_with is not None:
            raise self.fail_with

    async def send_message(self, message: str) -> None:
        self.calls.append(("message", message))

    def progress_calls(self) -> list[tuple[float, float]]:
        return [(call[2], call[3]) for call in self.calls if call[0] == "progress"]


class StubUnleashClient:
    """Remote client double that echoes identifiers back."""

    def __init__(
        self,
        projects: list[Project] | None = None,
        features: list[FeatureFlag] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.projects = projects or []
        self.features = features or []
        self.error = error
        self.calls: list[tuple[Any, ...]] = []

    def _maybe_fail(self) -> None:
        if self.error is not None:
            raise self.error

    async def list_projects(self) -> list[Project]:
        self.calls.append(("list_projects",))
        self._maybe_fail()
        return self.projects

    async def list_features(self, project_id: str) -> list[FeatureFlag]:
        self.calls.append(("list_features", project_id))
        self._maybe_fail()
        return self.features

    async def get_feature(self, project_id: str, feature_name: str) -> FeatureFlag:
        self.calls.append(("get_feature", project_id, feature_name))
        self._maybe_fail()
        return FeatureFlag(
            name=feature_name,
            project=project_id,
            type="release",
            environments=[
                FeatureEnvironment(name="development", enabled=True),
                FeatureEnvironment(name="production", enabled=False),
            ],
        )

    async def create_feature(self, project_id: str, payload: dict[str, Any]) -> FeatureFlag:
        self.calls.append(("create_feature", project_id, payload))
        self._maybe_fail()
        return FeatureFlag.model_validate({**payload, "project": project_id})

    async def toggle_feature_environment(
        self, project_id: str, feature_name: str, environment: str, enabled: bool
    ) -> FeatureFlag:
        self.calls.append(("toggle", project_id, feature_name, environment, enabled))
        self._maybe_fail()
        return FeatureFlag(
            name=feature_name,
            project=project_id,
            environments=[FeatureEnvironment(name=environment, enabled=enabled)],
        )

    async def add_feature_strategy(
        self, project_id: str, feature_name: str, environment: str, payload: dict[str, Any]
    ) -> FeatureStrategy:
        self.calls.append(("add_strategy", project_id, feature_name, environment, payload))
        self._maybe_fail()
        return FeatureStrategy.model_validate({**payload, "id": "strategy-1"})

    async def delete_feature_strategy(
        self, project_id: str, feature_name: str, environment: str, strategy_id: str
    ) -> None:
        self.calls.append(("delete_strategy", project_id, feature_name, environment, strategy_id))
        self._maybe_fail()


def make_config(**overrides: Any) -> Config:
    values: dict[str, Any] = {
        "base_url": "https://unleash.example.com",
        "access_token": "user:token",
    }
    values.update(overrides)
    return Config.model_validate(values)


ContextFactory = Callable[..., ServerContext]


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def capturing_sink() -> CapturingSink:
    return CapturingSink()


@pytest.fixture
def stub_client() -> StubUnleashClient:
    return StubUnleashClient()


@pytest.fixture
def make_context(
    recording_logger: RecordingLogger, capturing_sink: CapturingSink, stub_client: StubUnleashClient
) -> ContextFactory:
    """Build a `ServerContext` wired to the shared doubles."""

    def factory(client: Any = None, **config_overrides: Any) -> ServerContext:
        return build_context(
            make_config(**config_overrides),
            client if client is not None else stub_client,
            recording_logger,
            ProgressEmitter(capturing_sink, recording_logger),
        )

    return factory
