"""Run sub-agents one after another in the same invocation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, ClassVar, Iterator

from strand.agents.base import AgentKind, BaseAgent

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext
    from strand.events.event import Event

logger = logging.getLogger(__name__)


class SequentialAgent(BaseAgent):
    """Runs each sub-agent in order; an escalating event stops the sequence.

    Usage::

        pipeline = SequentialAgent(name="pipeline", sub_agents=[draft, review])
    """

    kind: ClassVar[AgentKind] = AgentKind.SEQUENTIAL

    def _run_impl(self, ctx: InvocationContext) -> Iterator[Event]:
        for sub_agent in self.sub_agents:
            for event in sub_agent.run(ctx):
                yield event
                if event.actions.escalate:
                    logger.debug("%s: %s escalated, stopping", self.name, event.author)
                    return
            if ctx.end_invocation:
                return
