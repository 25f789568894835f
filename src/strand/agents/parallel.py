"""Run sub-agents concurrently, each on its own branch.

Every sub-agent runs on a worker thread with its own child invocation
context. Events are multiplexed into one stream through a queue. A branch
is blocked after handing over an event until the consumer has taken it and
asked for the next one, so a branch never runs ahead of what the caller has
seen and each branch's own order is preserved.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import TYPE_CHECKING, ClassVar, Iterator, Union

from strand.agents.base import AgentKind, BaseAgent

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext
    from strand.events.event import Event

logger = logging.getLogger(__name__)

_DONE = object()

_Item = Union["Event", BaseException, object]


class ParallelAgent(BaseAgent):
    """Runs all sub-agents at the same time in isolated branches.

    Each sub-agent gets a child context: a fresh invocation id and a branch
    extended with its name, so siblings do not see each other's turns. The
    first error raised by any branch stops the others and propagates.
    When the stream ends or is closed early, the branch threads are joined
    for up to ``join_timeout`` seconds in total.

    Usage::

        fan_out = ParallelAgent(name="research", sub_agents=[web, papers])
    """

    kind: ClassVar[AgentKind] = AgentKind.PARALLEL
    join_timeout: float = 5.0

    def _run_impl(self, ctx: InvocationContext) -> Iterator[Event]:
        if not self.sub_agents:
            return
        contexts = [ctx.create_child_context(sub_agent) for sub_agent in self.sub_agents]
        items: queue.Queue[tuple[int, _Item]] = queue.Queue()
        stop = threading.Event()
        resumes = [threading.Event() for _ in contexts]

        threads = [
            threading.Thread(
                target=_run_branch,
                args=(index, child_ctx, items, resumes[index], stop),
                name=f"strand-{self.name}-{child_ctx.agent.name}",
                daemon=True,
            )
            for index, child_ctx in enumerate(contexts)
        ]
        for thread in threads:
            thread.start()

        running = len(contexts)
        try:
            while running:
                index, item = items.get()
                if item is _DONE:
                    running -= 1
                    continue
                if isinstance(item, BaseException):
                    raise item
                yield item
                resumes[index].set()
        finally:
            stop.set()
            for resume in resumes:
                resume.set()
            if running:
                logger.debug("%s: stopping %d running branch(es)", self.name, running)
                for child_ctx in contexts:
                    child_ctx.end_invocation = True
            self._join(threads)

    def _join(self, threads: list[threading.Thread]) -> None:
        deadline = time.monotonic() + self.join_timeout
        for thread in threads:
            thread.join(max(0.0, deadline - time.monotonic()))
        alive = [t.name for t in threads if t.is_alive()]
        if alive:
            logger.warning(
                "%s: branch thread(s) still running after %.1fs: %s",
                self.name,
                self.join_timeout,
                ", ".join(alive),
            )


def _run_branch(
    index: int,
    ctx: InvocationContext,
    items: queue.Queue,
    resume: threading.Event,
    stop: threading.Event,
) -> None:
    agent_run = ctx.agent.run(ctx)
    try:
        for event in agent_run:
            items.put((index, event))
            resume.wait()
            resume.clear()
            if stop.is_set():
                break
    except Exception as exc:
        logger.debug("Branch %s failed: %r", ctx.branch, exc)
        items.put((index, exc))
        return
    finally:
        agent_run.close()
    items.put((index, _DONE))
