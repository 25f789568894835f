"""Shared test fixtures for Strand.

Provides a scripted model, in-memory and database session services, and
helpers for running turns through a Runner.
"""

from __future__ import annotations

from typing import Any, Callable, Iterator, Sequence, Union

import pytest

from strand.agents.invocation_context import InvocationContext, new_invocation_id
from strand.agents.sequential import SequentialAgent
from strand.events.event import Event
from strand.llm.models import LlmRequest, LlmResponse
from strand.memory.in_memory import InMemoryMemoryService
from strand.models.content import Content, Part
from strand.runner import InMemoryRunner
from strand.sessions.database import DatabaseSessionService
from strand.sessions.in_memory import InMemorySessionService
from strand.tools.context import ToolContext

Script = Union[LlmResponse, Sequence[LlmResponse], Callable[[LlmRequest], Any]]


class ScriptedLlm:
    """BaseLlm that replays canned responses and records every request.

    Each script item is consumed by one ``generate`` call. An item may be a
    single response, a list of responses (streamed in order), or a callable
    taking the request and returning either of those (or raising).
    """

    def __init__(self, responses: Sequence[Script] = (), model: str = "scripted") -> None:
        self.model = model
        self.responses = list(responses)
        self.requests: list[LlmRequest] = []

    def generate(self, request: LlmRequest, stream: bool = False) -> Iterator[LlmResponse]:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"{self.model}: no scripted response left")
        item = self.responses.pop(0)
        if callable(item):
            item = item(request)
        if isinstance(item, LlmResponse):
            yield item
        else:
            yield from item


def text(value: str) -> LlmResponse:
    """A final text reply."""
    return LlmResponse(content=Content.model(value), turn_complete=True)


def call(name: str, **args: Any) -> LlmResponse:
    """A reply carrying one function call."""
    return LlmResponse(content=Content(role="model", parts=[Part.from_function_call(name, args)]))


def calls(*pairs: tuple[str, dict[str, Any]]) -> LlmResponse:
    """A reply carrying several function calls, in order."""
    return LlmResponse(
        content=Content(
            role="model", parts=[Part.from_function_call(name, args) for name, args in pairs]
        )
    )


def texts_of(events: Sequence[Event]) -> list[str]:
    return [e.content.text for e in events if e.content is not None and e.content.text]


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture(params=["memory", "database"])
def session_service(request):
    """Each session-service implementation, freshly created."""
    if request.param == "memory":
        yield InMemorySessionService()
    else:
        service = DatabaseSessionService(":memory:")
        yield service
        service.close()


@pytest.fixture
def memory_service() -> InMemoryMemoryService:
    return InMemoryMemoryService()


# ------------------------------------------------------------------
# Shared helpers
# ------------------------------------------------------------------


def make_runner(agent, *, session_id: str = "s1", user_id: str = "u1", state=None, **kwargs) -> InMemoryRunner:
    """Create an InMemoryRunner with one empty session."""
    runner = InMemoryRunner(agent, app_name="test-app", **kwargs)
    runner.session_service.create_session(
        app_name="test-app", user_id=user_id, session_id=session_id, state=state
    )
    return runner


def run_turn(
    runner: InMemoryRunner,
    message: Union[str, Content, None],
    *,
    session_id: str = "s1",
    user_id: str = "u1",
    **kwargs: Any,
) -> list[Event]:
    """Run one turn to completion and return the yielded events."""
    if isinstance(message, str):
        message = Content.user(message)
    return list(
        runner.run(user_id=user_id, session_id=session_id, new_message=message, **kwargs)
    )


def load_session(runner: InMemoryRunner, *, session_id: str = "s1", user_id: str = "u1"):
    return runner.session_service.get_session(
        app_name=runner.app_name, user_id=user_id, session_id=session_id
    )


def make_tool_context(agent=None, **kwargs) -> ToolContext:
    """A ToolContext over a fresh in-memory session."""
    service = InMemorySessionService()
    session = service.create_session(app_name="app", user_id="u1")
    ctx = InvocationContext(
        session_service=service,
        invocation_id=new_invocation_id(),
        agent=agent or SequentialAgent(name="root"),
        session=session,
        **kwargs,
    )
    return ToolContext(ctx, function_call_id="c1")
