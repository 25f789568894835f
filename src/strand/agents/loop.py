"""Repeat sub-agents until one escalates or the iteration cap is reached."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, ClassVar, Iterator, Optional

from strand.agents.base import AgentKind, BaseAgent

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext
    from strand.events.event import Event

logger = logging.getLogger(__name__)


class LoopAgent(BaseAgent):
    """Runs all sub-agents in order, repeatedly.

    Args:
        max_iterations: Number of full passes; ``None`` loops until a
            sub-agent escalates or the invocation ends.

    The loop stops as soon as any yielded event sets ``escalate``, without
    finishing the current pass.
    """

    kind: ClassVar[AgentKind] = AgentKind.LOOP

    def __init__(self, *, max_iterations: Optional[int] = None, **kwargs: Any) -> None:
        if max_iterations is not None and max_iterations < 0:
            raise ValueError("max_iterations must be >= 0")
        super().__init__(**kwargs)
        self.max_iterations = max_iterations

    def _run_impl(self, ctx: InvocationContext) -> Iterator[Event]:
        iteration = 0
        while self.max_iterations is None or iteration < self.max_iterations:
            iteration += 1
            logger.debug("%s: iteration %d", self.name, iteration)
            for sub_agent in self.sub_agents:
                for event in sub_agent.run(ctx):
                    yield event
                    if event.actions.escalate:
                        return
                if ctx.end_invocation:
                    return
            if not self.sub_agents:
                return
