"""The Event record: one immutable entry in a session's history."""

from __future__ import annotations

import time
import uuid
from typing import Optional

from pydantic import Field

from strand.events.actions import EventActions
from strand.llm.models import LlmResponse
from strand.models.content import FunctionCall, FunctionResponse


def new_event_id() -> str:
    """Return a fresh 8-character hex event id."""
    return uuid.uuid4().hex[:8]


class Event(LlmResponse):
    """An entry in the conversation record.

    Events are created by the user (``author="user"``) or by agents, and are
    immutable once appended to a session.

    Attributes:
        id: Unique event id.
        invocation_id: Invocation that produced the event.
        author: ``"user"`` or the producing agent's name.
        branch: Dot-separated agent path; events are hidden from agents whose
            branch does not descend from this one.
        timestamp: Seconds since the epoch.
        actions: Side effects to apply on append.
        long_running_tool_ids: Ids of function calls in this event whose
            responses may arrive in a later invocation.
    """

    id: str = Field(default_factory=new_event_id)
    invocation_id: str = ""
    author: str
    branch: Optional[str] = None
    timestamp: float = Field(default_factory=time.time)
    actions: EventActions = Field(default_factory=EventActions)
    long_running_tool_ids: Optional[set[str]] = None

    def get_function_calls(self) -> list[FunctionCall]:
        """Return the function calls carried by this event, in order."""
        if self.content is None:
            return []
        return [p.function_call for p in self.content.parts if p.function_call is not None]

    def get_function_responses(self) -> list[FunctionResponse]:
        """Return the function responses carried by this event, in order."""
        if self.content is None:
            return []
        return [
            p.function_response for p in self.content.parts if p.function_response is not None
        ]

    def has_trailing_text(self) -> bool:
        """True if the last part of the content is text."""
        if self.content is None or not self.content.parts:
            return False
        return self.content.parts[-1].text is not None

    def is_final_response(self) -> bool:
        """Whether this event ends the current agent's turn.

        A pending transfer is never final. Otherwise an event with
        ``skip_summarization`` or long-running calls is final, and any other
        event is final when it is complete and carries no function calls or
        function responses.
        """
        if self.actions.transfer_to_agent:
            return False
        if self.actions.skip_summarization or self.long_running_tool_ids:
            return True
        return (
            not self.get_function_calls()
            and not self.get_function_responses()
            and not self.partial
        )
