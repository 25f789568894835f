"""Function-call handling: client ids, dispatch, response merging.

The dispatcher executes every function call in a model event against the
tools registered on the request, applies the agent's tool callbacks, and
merges the resulting function responses into a single event in call
order. Tool failures never raise here; only ``FatalInvocationError``
escapes (see ``BaseTool.execute``).
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from strand.events.actions import EventActions
from strand.events.event import Event, new_event_id
from strand.exceptions import ToolNotFoundError
from strand.models.content import Content, FunctionCall, Part
from strand.tools.base import error_payload
from strand.tools.context import ToolContext

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext
    from strand.models.content import FunctionResponse
    from strand.tools.base import BaseTool

logger = logging.getLogger(__name__)

CLIENT_CALL_ID_PREFIX = "strand-"
REQUEST_CREDENTIAL = "strand_request_credential"
TOOL_NOT_FOUND = "Tool not found"


# ------------------------------------------------------------------
# Client-side call ids
# ------------------------------------------------------------------


def generate_client_call_id() -> str:
    return f"{CLIENT_CALL_ID_PREFIX}{uuid.uuid4()}"


def populate_client_call_ids(event: Event) -> None:
    """Give every id-less function call in ``event`` a client id."""
    for call in event.get_function_calls():
        if not call.id:
            call.id = generate_client_call_id()


def remove_client_call_ids(content: Content) -> None:
    """Strip client-generated ids before contents go back to a model."""
    for part in content.parts:
        if part.function_call and (part.function_call.id or "").startswith(CLIENT_CALL_ID_PREFIX):
            part.function_call.id = None
        if part.function_response and (part.function_response.id or "").startswith(
            CLIENT_CALL_ID_PREFIX
        ):
            part.function_response.id = None


def get_long_running_call_ids(
    calls: Iterable[FunctionCall], tools_dict: Mapping[str, BaseTool]
) -> set[str]:
    """Ids of calls whose tool is long-running."""
    ids: set[str] = set()
    for call in calls:
        tool = tools_dict.get(call.name)
        if tool is not None and tool.is_long_running and call.id:
            ids.add(call.id)
    return ids


# ------------------------------------------------------------------
# Dispatch
# ------------------------------------------------------------------


def _get_tool(call: FunctionCall, tools_dict: Mapping[str, BaseTool]) -> BaseTool:
    tool = tools_dict.get(call.name)
    if tool is None:
        raise ToolNotFoundError(call.name, sorted(tools_dict))
    return tool


def build_response_event(
    ctx: InvocationContext,
    tool_name: str,
    response: dict[str, Any],
    tool_context: ToolContext,
) -> Event:
    part = Part.from_function_response(
        name=tool_name, response=response, id=tool_context.function_call_id
    )
    return Event(
        invocation_id=ctx.invocation_id,
        author=ctx.agent.name,
        branch=ctx.branch,
        content=Content(role="user", parts=[part]),
        actions=tool_context.actions,
    )


def handle_function_calls(
    ctx: InvocationContext,
    event: Event,
    tools_dict: Mapping[str, BaseTool],
    filters: set[str] | None = None,
) -> Event | None:
    """Execute the function calls in ``event``.

    Args:
        ctx: Invocation whose agent owns the tools and callbacks.
        event: Model event carrying function calls.
        tools_dict: Tool name to tool.
        filters: When given, only calls with these ids are executed.

    Returns:
        One merged function-response event, or None if no call produced a
        response (e.g. only long-running calls without an immediate result).
    """
    agent = ctx.agent
    before_callbacks = getattr(agent, "before_tool_callbacks", ())
    after_callbacks = getattr(agent, "after_tool_callbacks", ())

    response_events: list[Event] = []
    for call in event.get_function_calls():
        if filters is not None and call.id not in filters:
            continue

        tool_context = ToolContext(ctx, function_call_id=call.id)
        try:
            tool = _get_tool(call, tools_dict)
        except ToolNotFoundError as exc:
            logger.warning("%s", exc)
            response_events.append(
                build_response_event(
                    ctx, call.name, error_payload(call.name, TOOL_NOT_FOUND, str(exc)), tool_context
                )
            )
            continue

        args = copy.deepcopy(call.args)
        logger.debug("Dispatching %s (id=%s)", tool.name, call.id)

        response: dict[str, Any] | None = None
        for callback in before_callbacks:
            response = callback(tool, args, tool_context)
            if response is not None:
                break
        if response is None:
            response = tool.execute(args, tool_context)
        for callback in after_callbacks:
            altered = callback(tool, args, tool_context, response)
            if altered is not None:
                response = altered
                break

        if response is None:
            # Long-running call; its response arrives in a later invocation.
            continue
        response_events.append(build_response_event(ctx, tool.name, response, tool_context))

    if not response_events:
        return None
    return merge_response_events(response_events)


def merge_response_events(events: list[Event]) -> Event:
    """Merge function-response events into one, preserving order.

    The merged event takes the first event's timestamp and invocation and
    the union of all actions.
    """
    if not events:
        raise ValueError("At least one function-response event is required")
    if len(events) == 1:
        return events[0]

    first = events[0]
    parts: list[Part] = []
    actions = EventActions()
    for event in events:
        if event.content is not None:
            parts.extend(event.content.parts)
        actions.merge(event.actions)
    return Event(
        id=new_event_id(),
        invocation_id=first.invocation_id,
        author=first.author,
        branch=first.branch,
        timestamp=first.timestamp,
        content=Content(role="user", parts=parts),
        actions=actions,
    )


# ------------------------------------------------------------------
# Credential requests
# ------------------------------------------------------------------


def generate_auth_event(ctx: InvocationContext, response_event: Event) -> Event | None:
    """Build the event asking the user for credentials, if any were requested.

    Each request becomes a long-running ``strand_request_credential`` call
    whose args name the original function call and the credential needed.
    """
    requested = response_event.actions.requested_auth_configs
    if not requested:
        return None

    parts: list[Part] = []
    long_running: set[str] = set()
    for function_call_id, auth_config in requested.items():
        call = FunctionCall(
            id=generate_client_call_id(),
            name=REQUEST_CREDENTIAL,
            args={
                "function_call_id": function_call_id,
                "auth_config": auth_config.model_dump(mode="json"),
            },
        )
        parts.append(Part(function_call=call))
        long_running.add(call.id)

    return Event(
        invocation_id=ctx.invocation_id,
        author=ctx.agent.name,
        branch=ctx.branch,
        content=Content(role="model", parts=parts),
        long_running_tool_ids=long_running,
    )


def find_matching_function_call(events: list[Event]) -> Event | None:
    """Event holding the call answered by the last event's function response."""
    if not events:
        return None
    responses: list[FunctionResponse] = events[-1].get_function_responses()
    if not responses:
        return None
    call_id = responses[0].id
    for event in reversed(events[:-1]):
        if any(call.id == call_id for call in event.get_function_calls()):
            return event
    return None
