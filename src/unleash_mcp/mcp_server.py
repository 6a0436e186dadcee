"""MCP server entry point for the Unleash feature flag bridge."""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable, Coroutine, Sequence
from importlib import metadata
from typing import Any

import httpx
import mcp.types as types
from loguru import logger
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError
from pydantic import AnyUrl

from .client import UnleashClient
from .config import ConfigurationError, load_config
from .context import build_context
from .errors import ErrorCode, NormalizedError
from .logging_setup import create_logger
from .progress import McpNotificationSink, ProgressEmitter, ProgressToken
from .registry import ToolDefinition, ToolRegistry, ToolResult
from .resources import (
    JSON_MIME_TYPE,
    PROJECTS_RESOURCE_URI,
    ResourceReadError,
    ResourceRegistry,
    build_resource_registry,
)
from .tools import DEFAULT_TOOLS

__all__ = [
    "create_server",
    "register_handlers",
    "run_server",
    "run",
    "main",
    "__version__",
]

SERVER_NAME = "unleash-mcp"

INSTRUCTIONS = "\n".join(
    [
        "Use these tools during local development to decouple risky changes from deployments:",
        "1) Check existing flags with get_flag_state or the unleash://projects resources.",
        "2) If the change is risky and no flag exists, create one with create_flag.",
        "3) Turn the flag on or off per environment with toggle_flag_environment.",
        "4) Roll a flag out gradually with set_flag_rollout.",
        "5) Remove an obsolete activation strategy with remove_flag_strategy.",
    ]
)

HTTP_TIMEOUT_SECONDS = 30.0


def _resolve_version() -> str:
    """Return the installed distribution version or fall back to the project default."""

    try:
        return metadata.version("unleash-mcp")
    except metadata.PackageNotFoundError:
        return "0.1.0"


__version__ = _resolve_version()


def to_mcp_tool(definition: ToolDefinition) -> types.Tool:
    return types.Tool(
        name=definition.name,
        description=definition.description,
        inputSchema=definition.input_schema.json_schema(),
    )


def to_call_tool_result(result: ToolResult) -> types.CallToolResult:
    """Convert a dispatcher result into the MCP wire model."""
    content: list[Any] = [types.TextContent(type="text", text=result.text)]
    if result.resource_link is not None:
        link = result.resource_link
        content.append(
            types.ResourceLink(
                type="resource_link",
                uri=AnyUrl(link.uri),
                name=link.name,
                mimeType=link.mime_type,
                title=link.title,
            )
        )
    return types.CallToolResult(
        content=content,
        structuredContent=dict(result.structured),
        isError=result.is_error,
    )


def to_mcp_error(error: NormalizedError) -> McpError:
    code = types.INVALID_PARAMS if error.code is ErrorCode.INVALID_INPUT else types.INTERNAL_ERROR
    message = f"{error.message}\n\nHint: {error.hint}" if error.hint else error.message
    return McpError(types.ErrorData(code=code, message=message, data=error.to_payload()))


def _progress_token(server: Server[Any, Any]) -> ProgressToken | None:
    meta = server.request_context.meta
    if meta is None:
        return None
    return meta.progressToken


def create_server() -> Server[Any, Any]:
    return Server(SERVER_NAME, version=__version__, instructions=INSTRUCTIONS)


def register_handlers(
    server: Server[Any, Any], registry: ToolRegistry, resources: ResourceRegistry
) -> None:
    """Route MCP tool and resource requests into the dispatch layer."""

    @server.list_tools()  # type: ignore[misc]
    async def list_tools() -> list[types.Tool]:
        return [to_mcp_tool(definition) for definition in registry.definitions()]

    # Argument validation belongs to the registry so failures are normalized.
    @server.call_tool(validate_input=False)  # type: ignore[misc]
    async def call_tool(name: str, arguments: dict[str, Any] | None) -> types.CallToolResult:
        result = await registry.invoke(name, arguments or {}, _progress_token(server))
        return to_call_tool_result(result)

    @server.list_resource_templates()  # type: ignore[misc]
    async def list_resource_templates() -> list[types.ResourceTemplate]:
        return [
            types.ResourceTemplate(
                uriTemplate=template.uri_template,
                name=template.name,
                description=template.description,
                mimeType=template.mime_type,
            )
            for template in resources.templates()
        ]

    @server.list_resources()  # type: ignore[misc]
    async def list_resources() -> list[types.Resource]:
        return [
            types.Resource(
                uri=AnyUrl(PROJECTS_RESOURCE_URI),
                name="unleash-projects",
                description="All Unleash projects visible to the configured token.",
                mimeType=JSON_MIME_TYPE,
            )
        ]

    @server.read_resource()  # type: ignore[misc]
    async def read_resource(uri: AnyUrl) -> list[ReadResourceContents]:
        try:
            content = await resources.read(str(uri))
        except ResourceReadError as exc:
            raise to_mcp_error(exc.error) from exc
        return [ReadResourceContents(content=content.text, mime_type=content.mime_type)]


async def run_server(argv: Sequence[str] | None = None) -> None:
    """Run the MCP server over stdio until the client disconnects."""

    config = load_config(argv)
    server_logger = create_logger(config.log_level, config.log_file)
    server_logger.info(f"Starting Unleash MCP Server {__version__}")
    server_logger.info(f"Base URL: {config.base_url}")
    server_logger.info(f"Dry run: {config.dry_run}")
    if config.default_project:
        server_logger.info(f"Default project: {config.default_project}")

    try:
        async with httpx.AsyncClient(
            base_url=config.base_url,
            headers=UnleashClient.build_headers(config.access_token),
            timeout=HTTP_TIMEOUT_SECONDS,
        ) as http_client:
            unleash_client = UnleashClient(
                http_client, dry_run=config.dry_run, log=server_logger
            )
            server = create_server()
            context = build_context(
                config,
                unleash_client,
                server_logger,
                ProgressEmitter(McpNotificationSink(server), server_logger),
            )
            registry = ToolRegistry(context)
            registry.register_all(DEFAULT_TOOLS)
            register_handlers(server, registry, build_resource_registry(context))

            async with stdio_server() as (read_stream, write_stream):
                server_logger.info("Unleash MCP Server started successfully")
                await server.run(
                    read_stream, write_stream, server.create_initialization_options()
                )
    finally:
        server_logger.close()


def run(main: Callable[[], Coroutine[Any, Any, None]] | None = None) -> None:
    """Synchronous helper for CLI entry points."""
    entry = main or run_server
    try:
        asyncio.run(entry())
    except KeyboardInterrupt:
        logger.warning("MCP server interrupted by user.")
    except ConfigurationError as exc:
        logger.error(f"Fatal error starting server: {exc}")
        raise SystemExit(1) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unhandled MCP server failure: {}", exc)
        raise


def main() -> None:
    """Console script entry point: ``unleash-mcp [--dry-run] [--log-level LEVEL]``."""
    # Startup failures go to stderr; per-instance sinks take over once configured.
    logger.remove()
    logger.add(sys.stderr, level="WARNING", filter=lambda record: "sink_id" not in record["extra"])
    argv = sys.argv[1:]
    run(lambda: run_server(argv))
