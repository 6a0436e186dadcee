"""Feature flag tools exposed over MCP."""

from .create_flag import create_flag_tool
from .get_flag_state import get_flag_state_tool
from .remove_flag_strategy import remove_flag_strategy_tool
from .set_flag_rollout import set_flag_rollout_tool
from .toggle_flag_environment import toggle_flag_environment_tool

DEFAULT_TOOLS = [
    create_flag_tool,
    set_flag_rollout_tool,
    get_flag_state_tool,
    toggle_flag_environment_tool,
    remove_flag_strategy_tool,
]

__all__ = [
    "DEFAULT_TOOLS",
    "create_flag_tool",
    "get_flag_state_tool",
    "remove_flag_strategy_tool",
    "set_flag_rollout_tool",
    "toggle_flag_environment_tool",
]
