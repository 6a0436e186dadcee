from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace
from typing import Any, cast

import httpx
import mcp.types as types
import pytest
from mcp.shared.exceptions import McpError
from pydantic import AnyUrl

from unleash_mcp import mcp_server
from unleash_mcp.errors import ErrorCode, NormalizedError
from unleash_mcp.registry import ResourceLink, ToolResult

ENV_KEYS = (
    "UNLEASH_MCP_CONFIG",
    "UNLEASH_BASE_URL",
    "UNLEASH_PAT",
    "UNLEASH_DEFAULT_PROJECT",
    "UNLEASH_DEFAULT_ENVIRONMENT",
    "UNLEASH_DRY_RUN",
    "UNLEASH_LOG_LEVEL",
    "APP_LOG_FILE",
)


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class DummySession:
    def __init__(self) -> None:
        self.notifications: list[tuple[str, dict[str, Any]]] = []

    async def send_progress_notification(self, **kwargs: Any) -> None:
        self.notifications.append(("progress", kwargs))

    async def send_log_message(self, **kwargs: Any) -> None:
        self.notifications.append(("log", kwargs))


class DummyServer:
    """Stand-in for the low-level MCP server that records registered handlers."""

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {}
        self.session = DummySession()
        self.request_context = SimpleNamespace(
            meta=SimpleNamespace(progressToken="tok-1"),
            session=self.session,
            request_id=7,
        )
        self.ran = False

    def _capture(self, name: str) -> Any:
        def decorator(func: Any) -> Any:
            self.handlers[name] = func
            return func

        return decorator

    def list_tools(self) -> Any:
        return self._capture("list_tools")

    def call_tool(self, *, validate_input: bool = True) -> Any:
        self.handlers["validate_input"] = validate_input
        return self._capture("call_tool")

    def list_resource_templates(self) -> Any:
        return self._capture("list_resource_templates")

    def list_resources(self) -> Any:
        return self._capture("list_resources")

    def read_resource(self) -> Any:
        return self._capture("read_resource")

    def create_initialization_options(self) -> dict[str, Any]:
        return {"server_name": "unleash-mcp"}

    async def run(self, read_stream: Any, write_stream: Any, options: Any) -> None:
        self.ran = True


def test_run_server_contract(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """`run_server` should wire config, HTTP client, registries and stdio transport."""

    mcp_module = cast(Any, mcp_server)
    captured: dict[str, Any] = {}
    _clear_env(monkeypatch)
    monkeypatch.setenv("UNLEASH_BASE_URL", "https://unleash.example.com/")
    monkeypatch.setenv("UNLEASH_PAT", "user:token")
    monkeypatch.setenv("UNLEASH_DEFAULT_PROJECT", "web")
    monkeypatch.setenv("APP_LOG_FILE", str(tmp_path / "server.log"))

    class DummyAsyncClient:
        def __init__(self, *args: Any, **kwargs: Any) -> None:
            captured["httpx_kwargs"] = kwargs
            captured["requests"] = []

        async def __aenter__(self) -> DummyAsyncClient:
            return self

        async def __aexit__(self, *exc_info: Any) -> None:
            captured["httpx_exit"] = True

        async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
            captured["requests"].append((method, path))
            if path == "/api/admin/projects":
                return httpx.Response(200, json={"projects": [{"id": "web", "name": "Web"}]})
            return httpx.Response(
                200,
                json={
                    "name": "checkout",
                    "project": "web",
                    "environments": [{"name": "production", "enabled": True}],
                },
            )

    monkeypatch.setattr(mcp_module.httpx, "AsyncClient", DummyAsyncClient)

    server = DummyServer()
    monkeypatch.setattr(mcp_module, "create_server", lambda: server)

    @asynccontextmanager
    async def dummy_stdio_server() -> Any:
        captured["stdio_enter"] = True
        yield ("read", "write")

    monkeypatch.setattr(mcp_module, "stdio_server", dummy_stdio_server)

    asyncio.run(mcp_server.run_server(["--log-level", "debug"]))

    assert server.ran is True
    assert captured["stdio_enter"] is True
    assert captured["httpx_exit"] is True
    assert captured["httpx_kwargs"]["base_url"] == "https://unleash.example.com"
    assert captured["httpx_kwargs"]["headers"]["Authorization"] == "user:token"
    assert server.handlers["validate_input"] is False
    assert "Starting Unleash MCP Server" in (tmp_path / "server.log").read_text(encoding="utf-8")

    tools = asyncio.run(server.handlers["list_tools"]())
    assert {tool.name for tool in tools} == {
        "create_flag",
        "set_flag_rollout",
        "get_flag_state",
        "toggle_flag_environment",
        "remove_flag_strategy",
    }

    call_tool = server.handlers["call_tool"]
    result = asyncio.run(call_tool("get_flag_state", {"featureName": "checkout"}))
    assert isinstance(result, types.CallToolResult)
    assert result.isError is False
    assert result.structuredContent is not None
    assert result.structuredContent["projectId"] == "web"
    assert ("GET", "/api/admin/projects/web/features/checkout") in captured["requests"]
    kinds = [kind for kind, _ in server.session.notifications]
    assert kinds == ["progress", "log", "progress", "log"]
    assert server.session.notifications[0][1]["progress_token"] == "tok-1"

    failure = asyncio.run(call_tool("nope", None))
    assert failure.isError is True
    assert failure.structuredContent == {
        "success": False,
        "error": {"code": "NotFoundTool", "message": "Tool not found: nope", "hint": None},
    }

    templates = asyncio.run(server.handlers["list_resource_templates"]())
    assert [template.name for template in templates] == [
        "unleash-feature-flag",
        "unleash-feature-flags-by-project",
        "unleash-projects",
    ]

    read_resource = server.handlers["read_resource"]
    contents = asyncio.run(read_resource(AnyUrl("unleash://projects?limit=1")))
    assert contents[0].mime_type == "application/json"
    assert '"id": "web"' in contents[0].content

    with pytest.raises(McpError) as info:
        asyncio.run(read_resource(AnyUrl("unleash://unknown")))
    assert info.value.error.code == types.INVALID_PARAMS


def test_run_exits_on_configuration_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)

    with pytest.raises(SystemExit) as info:
        mcp_server.run(lambda: mcp_server.run_server([]))

    assert info.value.code == 1


def test_to_call_tool_result_includes_resource_link() -> None:
    result = ToolResult(
        text="done",
        structured={"success": True},
        resource_link=ResourceLink(
            uri="unleash://projects/web/feature-flags/checkout",
            name="checkout",
            title="Feature flag: checkout",
        ),
    )

    converted = mcp_server.to_call_tool_result(result)

    assert converted.content[0].type == "text"
    assert converted.content[1].type == "resource_link"
    assert str(converted.content[1].uri) == "unleash://projects/web/feature-flags/checkout"
    assert converted.structuredContent == {"success": True}
    assert converted.isError is False


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (ErrorCode.INVALID_INPUT, types.INVALID_PARAMS),
        (ErrorCode.REMOTE_ERROR, types.INTERNAL_ERROR),
        (ErrorCode.UNKNOWN, types.INTERNAL_ERROR),
    ],
)
def test_to_mcp_error_codes(code: ErrorCode, expected: int) -> None:
    error = NormalizedError(code=code, message="bad", hint="try again")

    converted = mcp_server.to_mcp_error(error)

    assert converted.error.code == expected
    assert converted.error.message == "bad\n\nHint: try again"
    assert converted.error.data == {"code": code.value, "message": "bad", "hint": "try again"}
