"""The step loop shared by every LLM flow.

One step builds a request (request processors, then tools), calls the
model, runs the response processors, finalizes the model's output into
events, dispatches any function calls and, when a transfer was requested,
hands the rest of the turn to the target agent. ``run`` repeats steps until
one ends with a final response, an escalation, or the invocation is ended.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Iterator

from strand.agents.callback_context import CallbackContext, ReadonlyContext
from strand.events.event import Event, new_event_id
from strand.exceptions import AgentNotFoundError, FlowError
from strand.flows.functions import (
    generate_auth_event,
    get_long_running_call_ids,
    handle_function_calls,
    populate_client_call_ids,
)
from strand.llm.models import LlmRequest, LlmResponse
from strand.models.config import StreamingMode
from strand.tools.context import ToolContext

if TYPE_CHECKING:
    from strand.agents.base import BaseAgent
    from strand.agents.invocation_context import InvocationContext
    from strand.flows.processors import BaseRequestProcessor, BaseResponseProcessor

logger = logging.getLogger(__name__)


class BaseLlmFlow:
    """Step loop parameterized by its request and response processors."""

    request_processors: list[BaseRequestProcessor] = []
    response_processors: list[BaseResponseProcessor] = []

    def run(self, ctx: InvocationContext) -> Iterator[Event]:
        """Drive steps until the agent's turn is over.

        Raises:
            FlowError: If a step ends on a partial event.
        """
        while True:
            last_event: Event | None = None
            for event in self._run_one_step(ctx):
                last_event = event
                yield event

            if last_event is None or last_event.is_final_response():
                break
            if last_event.actions.escalate or ctx.end_invocation:
                break
            if last_event.partial:
                raise FlowError("Last event shouldn't be partial; the model stream ended early.")

    # ------------------------------------------------------------------
    # One step
    # ------------------------------------------------------------------

    def _run_one_step(self, ctx: InvocationContext) -> Iterator[Event]:
        llm_request = LlmRequest()

        for processor in self.request_processors:
            yield from processor.run(ctx, llm_request)
            if ctx.end_invocation:
                return

        tool_context = ToolContext(ctx)
        for tool in ctx.agent.canonical_tools(ReadonlyContext(ctx)):
            tool.process_llm_request(tool_context, llm_request)
        if ctx.end_invocation:
            return

        model_response_event = Event(
            invocation_id=ctx.invocation_id,
            author=ctx.agent.name,
            branch=ctx.branch,
        )
        for llm_response in self._call_llm(ctx, llm_request, model_response_event):
            yield from self._postprocess(ctx, llm_request, llm_response, model_response_event)

    def _call_llm(
        self,
        ctx: InvocationContext,
        llm_request: LlmRequest,
        model_response_event: Event,
    ) -> Iterator[LlmResponse]:
        agent = ctx.agent
        callback_context = CallbackContext(ctx, event_actions=model_response_event.actions)

        for callback in agent.before_model_callbacks:
            override = callback(callback_context, llm_request)
            if override is not None:
                yield override
                return

        ctx.increment_llm_call_count()
        llm = agent.canonical_model(ctx)
        stream = ctx.run_config.streaming_mode is StreamingMode.SSE
        logger.debug(
            "Agent %s calling model %s (%d contents, %d tools)",
            agent.name,
            llm.model,
            len(llm_request.contents),
            len(llm_request.tools_dict),
        )

        for llm_response in llm.generate(llm_request, stream=stream):
            for callback in agent.after_model_callbacks:
                altered = callback(callback_context, llm_response)
                if altered is not None:
                    llm_response = altered
                    break
            yield llm_response

    def _postprocess(
        self,
        ctx: InvocationContext,
        llm_request: LlmRequest,
        llm_response: LlmResponse,
        model_response_event: Event,
    ) -> Iterator[Event]:
        if self.response_processors:
            llm_response = llm_response.model_copy(deep=True)
            for processor in self.response_processors:
                yield from processor.run(ctx, llm_response)

        if (
            llm_response.content is None
            and not llm_response.error_code
            and not llm_response.interrupted
            and not llm_response.turn_complete
        ):
            return

        event = self._finalize_event(llm_request, llm_response, model_response_event)
        yield event

        if event.partial or not event.get_function_calls():
            return

        response_event = handle_function_calls(ctx, event, llm_request.tools_dict)
        if response_event is None:
            return

        auth_event = generate_auth_event(ctx, response_event)
        if auth_event is not None:
            yield auth_event
        yield response_event

        transfer = response_event.actions.transfer_to_agent
        if transfer:
            target = self._get_agent_to_run(ctx, transfer)
            logger.debug("Transferring from %s to %s", ctx.agent.name, target.name)
            yield from target.run(ctx)

    @staticmethod
    def _finalize_event(
        llm_request: LlmRequest,
        llm_response: LlmResponse,
        model_response_event: Event,
    ) -> Event:
        response = llm_response.model_copy(deep=True)
        update = {name: getattr(response, name) for name in LlmResponse.model_fields}
        event = model_response_event.model_copy(update=update, deep=True)
        event.id = new_event_id()
        event.timestamp = time.time()

        if event.get_function_calls():
            populate_client_call_ids(event)
            long_running = get_long_running_call_ids(
                event.get_function_calls(), llm_request.tools_dict
            )
            event.long_running_tool_ids = long_running or None
        return event

    @staticmethod
    def _get_agent_to_run(ctx: InvocationContext, agent_name: str) -> BaseAgent:
        target = ctx.agent.root_agent.find_agent(agent_name)
        if target is None:
            raise AgentNotFoundError(agent_name)
        return target
