"""The built-in tool the model calls to hand a turn to another agent."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from strand.llm.models import FunctionDeclaration
from strand.tools.base import BaseTool

if TYPE_CHECKING:
    from strand.tools.context import ToolContext

TRANSFER_TO_AGENT = "transfer_to_agent"


class TransferToAgentTool(BaseTool):
    """Records a transfer request in the event actions.

    The flow performs the actual switch after the function-response event
    is emitted. Targets outside ``agent_names`` are rejected with an error
    payload so the model can correct itself.
    """

    def __init__(self, agent_names: Sequence[str]) -> None:
        super().__init__(
            name=TRANSFER_TO_AGENT,
            description=(
                "Transfer the question to another agent. Use this tool to hand off "
                "control to another agent that is more suitable to answer the "
                "user's question according to the agent's description."
            ),
        )
        self.agent_names = list(agent_names)

    def get_declaration(self) -> FunctionDeclaration:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters={
                "type": "object",
                "properties": {
                    "agent_name": {
                        "type": "string",
                        "description": "The agent name to transfer to.",
                        "enum": self.agent_names,
                    }
                },
                "required": ["agent_name"],
            },
        )

    def validate_args(self, args: dict[str, Any]) -> dict[str, Any]:
        # The enum is advertised to the model but checked in run() so an
        # unknown target produces a targeted error message.
        agent_name = args.get("agent_name")
        if not isinstance(agent_name, str):
            return super().validate_args({})
        return {"agent_name": agent_name}

    def run(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        agent_name = args["agent_name"]
        if agent_name not in self.agent_names:
            return {
                "error": "Invalid agent",
                "message": (
                    f"Agent '{agent_name}' is not a valid transfer target. "
                    f"Available agents: {', '.join(self.agent_names)}"
                ),
                "tool": self.name,
            }
        tool_context.actions.transfer_to_agent = agent_name
        return None
