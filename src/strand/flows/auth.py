"""Resuming function calls that waited for end-user credentials.

A tool that needs a credential calls ``ToolContext.request_credential``.
The dispatcher then emits a long-running ``strand_request_credential``
call, and the function call is AWAITING_CREDENTIAL. When the user answers
with a function response carrying the filled-in ``AuthConfig``, this
processor stores the credential on the invocation and re-dispatches the
original call with its original id: the call is RESUMED.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING, Iterator, Sequence

from pydantic import ValidationError

from strand.agents.callback_context import ReadonlyContext
from strand.flows.functions import REQUEST_CREDENTIAL, handle_function_calls
from strand.flows.processors import BaseRequestProcessor
from strand.models.auth import AuthConfig

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext
    from strand.events.event import Event
    from strand.llm.models import LlmRequest

logger = logging.getLogger(__name__)


class CredentialRequestState(str, enum.Enum):
    """Lifecycle of a function call that requested a credential."""

    AWAITING_CREDENTIAL = "awaiting_credential"
    RESUMED = "resumed"


def credential_request_state(
    events: Sequence[Event], function_call_id: str
) -> CredentialRequestState | None:
    """Where the credential request for ``function_call_id`` stands.

    Returns None if the call never requested a credential.
    """
    request_ids: set[str] = set()
    for event in events:
        for call in event.get_function_calls():
            if call.name == REQUEST_CREDENTIAL and call.args.get("function_call_id") == function_call_id:
                request_ids.add(call.id or "")
    if not request_ids:
        return None
    for event in events:
        if event.author != "user":
            continue
        for response in event.get_function_responses():
            if response.name == REQUEST_CREDENTIAL and response.id in request_ids:
                return CredentialRequestState.RESUMED
    return CredentialRequestState.AWAITING_CREDENTIAL


class CredentialResumeProcessor(BaseRequestProcessor):
    """Re-dispatches calls whose credential the user just supplied."""

    def run(self, ctx: InvocationContext, llm_request: LlmRequest) -> Iterator[Event]:
        events = ctx.session.events
        if not events or events[-1].author != "user":
            return

        answered: dict[str, AuthConfig] = {}
        for response in events[-1].get_function_responses():
            if response.name != REQUEST_CREDENTIAL or not response.id:
                continue
            try:
                answered[response.id] = AuthConfig.model_validate(response.response)
            except ValidationError as exc:
                logger.warning("Ignoring malformed credential response %s: %s", response.id, exc)
        if not answered:
            return

        for auth_config in answered.values():
            ctx.credentials[auth_config.get_credential_key()] = auth_config.exchanged_credential

        original_ids: set[str] = set()
        for event in reversed(events[:-1]):
            for call in event.get_function_calls():
                if call.name == REQUEST_CREDENTIAL and call.id in answered:
                    original_ids.add(call.args["function_call_id"])
        if not original_ids:
            return

        tools_dict = {t.name: t for t in ctx.agent.canonical_tools(ReadonlyContext(ctx))}
        for event in reversed(events):
            if any(call.id in original_ids for call in event.get_function_calls()):
                logger.debug("Resuming calls %s after credential response", sorted(original_ids))
                response_event = handle_function_calls(ctx, event, tools_dict, original_ids)
                if response_event is not None:
                    yield response_event
                return
