"""Agent base class and the agent tree.

Agents form a tree. A parent owns its children; each child keeps only a
weak back-reference to its parent, used for name lookup and transfer
eligibility. An agent instance can be attached to one parent only.
"""

from __future__ import annotations

import enum
import logging
import weakref
from typing import TYPE_CHECKING, Callable, ClassVar, Iterator, Optional, Sequence

from strand.agents.callback_context import CallbackContext
from strand.events.event import Event
from strand.exceptions import AgentAttachError, InvalidAgentNameError

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext
    from strand.models.content import Content

logger = logging.getLogger(__name__)

AgentCallback = Callable[[CallbackContext], Optional["Content"]]


class AgentKind(str, enum.Enum):
    """The closed set of agent variants."""

    LLM = "llm"
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    LOOP = "loop"
    GRAPH = "graph"


class BaseAgent:
    """Common behaviour of every agent.

    Subclasses set ``kind`` and implement ``_run_impl``.

    Args:
        name: Identifier-safe name, unique within the tree, never "user".
        description: One-line capability summary used by transfer prompts.
        sub_agents: Children; each is attached to this agent.
        before_agent_callbacks: Run before the agent. The first one
            returning Content replaces the agent's run with that reply.
        after_agent_callbacks: Run after the agent. The first one returning
            Content appends that reply.

    Raises:
        InvalidAgentNameError: For an invalid or duplicated name.
        AgentAttachError: If a child already has a parent.
    """

    kind: ClassVar[AgentKind]

    def __init__(
        self,
        *,
        name: str,
        description: str = "",
        sub_agents: Sequence[BaseAgent] | None = None,
        before_agent_callbacks: Sequence[AgentCallback] | None = None,
        after_agent_callbacks: Sequence[AgentCallback] | None = None,
    ) -> None:
        _validate_name(name)
        self.name = name
        self.description = description
        self.before_agent_callbacks = list(before_agent_callbacks or [])
        self.after_agent_callbacks = list(after_agent_callbacks or [])
        self._parent_ref: weakref.ref[BaseAgent] | None = None
        self.sub_agents: list[BaseAgent] = []
        for sub_agent in sub_agents or []:
            self._attach(sub_agent)

    # ------------------------------------------------------------------
    # Tree
    # ------------------------------------------------------------------

    def _attach(self, sub_agent: BaseAgent) -> None:
        current = sub_agent.parent_agent
        if current is not None:
            raise AgentAttachError(sub_agent.name, current.name, self.name)
        taken = {a.name for a in self._walk()}
        for agent in sub_agent._walk():
            if agent.name in taken:
                raise InvalidAgentNameError(agent.name, "name is already used in this agent tree")
            taken.add(agent.name)
        sub_agent._parent_ref = weakref.ref(self)
        self.sub_agents.append(sub_agent)

    def _walk(self) -> Iterator[BaseAgent]:
        yield self
        for sub_agent in self.sub_agents:
            yield from sub_agent._walk()

    @property
    def parent_agent(self) -> BaseAgent | None:
        return self._parent_ref() if self._parent_ref is not None else None

    @property
    def root_agent(self) -> BaseAgent:
        agent = self
        while agent.parent_agent is not None:
            agent = agent.parent_agent
        return agent

    def find_agent(self, name: str) -> BaseAgent | None:
        """This agent or a descendant named ``name``."""
        if self.name == name:
            return self
        return self.find_sub_agent(name)

    def find_sub_agent(self, name: str) -> BaseAgent | None:
        for sub_agent in self.sub_agents:
            found = sub_agent.find_agent(name)
            if found is not None:
                return found
        return None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run(self, parent_context: InvocationContext) -> Iterator[Event]:
        """Run this agent within ``parent_context``'s invocation."""
        ctx = parent_context.for_agent(self)

        before_event = self._handle_agent_callbacks(ctx, self.before_agent_callbacks)
        if before_event is not None:
            yield before_event
            if before_event.content is not None:
                return
        if ctx.end_invocation:
            return

        logger.debug("Agent %s starting (invocation %s)", self.name, ctx.invocation_id)
        yield from self._run_impl(ctx)

        if ctx.end_invocation:
            return
        after_event = self._handle_agent_callbacks(ctx, self.after_agent_callbacks)
        if after_event is not None:
            yield after_event

    def _run_impl(self, ctx: InvocationContext) -> Iterator[Event]:
        raise NotImplementedError(f"{type(self).__name__} must implement _run_impl")

    def _handle_agent_callbacks(
        self, ctx: InvocationContext, callbacks: Sequence[AgentCallback]
    ) -> Event | None:
        if not callbacks:
            return None
        callback_context = CallbackContext(ctx)
        content = None
        for callback in callbacks:
            content = callback(callback_context)
            if content is not None:
                break
        if (
            content is None
            and not callback_context.state.has_delta()
            and not callback_context.actions.artifact_delta
        ):
            return None
        return Event(
            invocation_id=ctx.invocation_id,
            author=self.name,
            branch=ctx.branch,
            content=content,
            actions=callback_context.actions,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def _validate_name(name: str) -> None:
    if not name or not name.isidentifier():
        raise InvalidAgentNameError(name, "name must be a valid identifier")
    if name == "user":
        raise InvalidAgentNameError(name, "'user' is reserved for end-user input")
