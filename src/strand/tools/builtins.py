"""Built-in function tools."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from strand.tools.function_tool import FunctionTool

if TYPE_CHECKING:
    from strand.tools.context import ToolContext


def exit_loop(tool_context: ToolContext) -> None:
    """Exits the loop.

    Call this function only when you are instructed to do so.
    """
    tool_context.actions.escalate = True
    tool_context.actions.skip_summarization = True


def load_memory(query: str, tool_context: ToolContext) -> dict[str, Any]:
    """Loads the memory for the current user.

    Args:
        query: The query to search memory with.
    """
    response = tool_context.search_memory(query)
    return {"memories": [m.model_dump(mode="json") for m in response.memories]}


exit_loop_tool = FunctionTool(exit_loop)
load_memory_tool = FunctionTool(load_memory)
