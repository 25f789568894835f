"""Request and response processors shared by every LLM flow.

Each request processor fills part of the outgoing ``LlmRequest`` before the
model call. Each response processor may adjust an ``LlmResponse`` before it
becomes an event. Either kind may also yield events (the credential-resume
processor does), which the flow forwards like any other event.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterator

from strand.agents.base import AgentKind
from strand.agents.callback_context import ReadonlyContext
from strand.flows.contents import build_contents
from strand.flows.instructions import inject_session_state
from strand.models.config import GenerationConfig

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext
    from strand.events.event import Event
    from strand.llm.models import LlmRequest, LlmResponse


class BaseRequestProcessor(ABC):
    """One stage of request building."""

    @abstractmethod
    def run(self, ctx: InvocationContext, llm_request: LlmRequest) -> Iterator[Event]:
        """Update ``llm_request`` in place, yielding any events produced."""
        ...


class BaseResponseProcessor(ABC):
    """One stage of response handling, run before the response becomes an event."""

    @abstractmethod
    def run(self, ctx: InvocationContext, llm_response: LlmResponse) -> Iterator[Event]:
        """Update ``llm_response`` in place, yielding any events produced."""
        ...


class BasicProcessor(BaseRequestProcessor):
    """Model name and generation config."""

    def run(self, ctx: InvocationContext, llm_request: LlmRequest) -> Iterator[Event]:
        agent = ctx.agent
        llm_request.model = agent.canonical_model(ctx).model
        llm_request.config = agent.generate_config or GenerationConfig()
        yield from ()


class InstructionsProcessor(BaseRequestProcessor):
    """Global instruction from the root agent, the agent's own instruction, then output schema guidance."""

    def run(self, ctx: InvocationContext, llm_request: LlmRequest) -> Iterator[Event]:
        agent = ctx.agent
        readonly = ReadonlyContext(ctx)
        root = agent.root_agent

        if root.kind is AgentKind.LLM and root.global_instruction:
            text, bypass = root.canonical_global_instruction(readonly)
            if not bypass:
                text = inject_session_state(text, ctx)
            llm_request.append_instructions([text])

        if agent.instruction:
            text, bypass = agent.canonical_instruction(readonly)
            if not bypass:
                text = inject_session_state(text, ctx)
            llm_request.append_instructions([text])

        if agent.output_schema is not None:
            schema = json.dumps(agent.output_schema.model_json_schema(), indent=2)
            llm_request.append_instructions(
                [
                    "Reply with JSON only, without markdown or code fences, "
                    f"matching this JSON schema:\n{schema}"
                ]
            )
        yield from ()


class IdentityProcessor(BaseRequestProcessor):
    """Tells the model which agent it is speaking as."""

    def run(self, ctx: InvocationContext, llm_request: LlmRequest) -> Iterator[Event]:
        agent = ctx.agent
        lines = [f'You are an agent. Your internal name is "{agent.name}".']
        if agent.description:
            lines.append(f' The description about you is "{agent.description}"')
        llm_request.append_instructions(["".join(lines)])
        yield from ()


class ContentsProcessor(BaseRequestProcessor):
    """Conversation history visible to the agent."""

    def run(self, ctx: InvocationContext, llm_request: LlmRequest) -> Iterator[Event]:
        agent = ctx.agent
        llm_request.contents = build_contents(
            ctx.session.events,
            agent.name,
            ctx.branch,
            current_turn_only=agent.include_contents == "none",
        )
        yield from ()
