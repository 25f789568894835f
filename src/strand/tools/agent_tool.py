"""Expose an agent as a tool of another agent."""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from strand.events.event import Event
from strand.llm.models import FunctionDeclaration
from strand.models.content import Content
from strand.sessions.in_memory import InMemorySessionService
from strand.sessions.state import TEMP_PREFIX
from strand.tools.base import BaseTool

if TYPE_CHECKING:
    from strand.agents.base import BaseAgent
    from strand.tools.context import ToolContext

logger = logging.getLogger(__name__)


class AgentTool(BaseTool):
    """Runs an agent in an isolated in-memory session and returns its answer.

    The wrapped agent sees a copy of the caller's state and none of the
    caller's history. State deltas it produces are forwarded to the
    caller's function-response event. The nested invocation shares the
    caller's model-call counter and cancellation.

    Args:
        agent: Agent to run. It must not also be attached as a sub-agent.
        skip_summarization: Return the answer to the user as-is.
        output_key: Also store the answer in the caller's state.
    """

    def __init__(
        self,
        agent: BaseAgent,
        *,
        skip_summarization: bool = False,
        output_key: str | None = None,
    ) -> None:
        super().__init__(
            name=agent.name,
            description=agent.description or f"Delegate a request to the {agent.name} agent.",
        )
        self.agent = agent
        self.skip_summarization = skip_summarization
        self.output_key = output_key

    def get_declaration(self) -> FunctionDeclaration:
        return FunctionDeclaration(
            name=self.name,
            description=self.description,
            parameters={
                "type": "object",
                "properties": {
                    "request": {
                        "type": "string",
                        "description": "The request to send to the agent.",
                    }
                },
                "required": ["request"],
            },
        )

    def run(self, args: dict[str, Any], tool_context: ToolContext) -> Any:
        if self.skip_summarization:
            tool_context.actions.skip_summarization = True

        parent_ctx = tool_context.invocation_context
        service = InMemorySessionService()
        session = service.create_session(
            app_name=self.agent.name,
            user_id=parent_ctx.user_id,
            state={
                k: v
                for k, v in tool_context.state.to_dict().items()
                if not k.startswith(TEMP_PREFIX)
            },
        )
        content = Content.user(args["request"])
        ctx = dataclasses.replace(
            parent_ctx.create_child_context(self.agent),
            session_service=service,
            session=session,
            user_content=content,
            branch=None,
        )
        service.append_event(
            session, Event(author="user", invocation_id=ctx.invocation_id, content=content)
        )

        answer = ""
        for event in self.agent.run(ctx):
            if event.partial:
                continue
            service.append_event(session, event)
            if event.actions.state_delta:
                tool_context.state.update(event.actions.state_delta)
            if event.content is not None and event.content.text:
                answer = event.content.text

        logger.debug("Agent tool %s answered with %d chars", self.name, len(answer))
        if self.output_key:
            tool_context.state[self.output_key] = answer
        return {"result": answer}
