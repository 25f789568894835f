"""Tools callable by models: base contract, function tools and built-ins."""

from strand.tools.agent_tool import AgentTool
from strand.tools.base import BaseTool, BaseToolset
from strand.tools.builtins import exit_loop, exit_loop_tool, load_memory, load_memory_tool
from strand.tools.context import ToolContext
from strand.tools.function_tool import FunctionTool
from strand.tools.transfer_to_agent import TRANSFER_TO_AGENT, TransferToAgentTool

__all__ = [
    "AgentTool",
    "BaseTool",
    "BaseToolset",
    "FunctionTool",
    "TRANSFER_TO_AGENT",
    "ToolContext",
    "TransferToAgentTool",
    "exit_loop",
    "exit_loop_tool",
    "load_memory",
    "load_memory_tool",
]
