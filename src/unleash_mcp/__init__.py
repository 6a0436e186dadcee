"""Unleash feature flag management exposed to AI agents over MCP."""

from .client import UnleashClient
from .config import Config, load_config
from .context import ServerContext, build_context
from .mcp_server import run_server
from .registry import ToolDefinition, ToolRegistry

__all__ = [
    "Config",
    "ServerContext",
    "ToolDefinition",
    "ToolRegistry",
    "UnleashClient",
    "build_context",
    "load_config",
    "run_server",
]
