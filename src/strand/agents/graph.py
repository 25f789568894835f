"""Directed-graph composition of agents."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Iterator, Optional, Sequence

from strand.agents.base import AgentKind, BaseAgent
from strand.agents.callback_context import ReadonlyContext
from strand.events.event import Event
from strand.exceptions import FatalInvocationError, GraphDefinitionError

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext

logger = logging.getLogger(__name__)

NODE_EXECUTION_ERROR = "NODE_EXECUTION_ERROR"

NodeCondition = Callable[[Optional[Event], ReadonlyContext], bool]


@dataclass
class GraphNode:
    """A named step in a graph.

    Attributes:
        name: Unique node name within the graph.
        agent: Agent run when the node is visited.
        targets: Names of successor nodes.
        condition: Guard checked when a predecessor finishes, with that
            predecessor's last event. The node is only scheduled when the
            guard returns True. No guard means always scheduled.
    """

    name: str
    agent: BaseAgent
    targets: list[str] = field(default_factory=list)
    condition: Optional[NodeCondition] = None

    def accepts(self, last_event: Event | None, ctx: ReadonlyContext) -> bool:
        return self.condition is None or bool(self.condition(last_event, ctx))


class GraphAgent(BaseAgent):
    """Walks a graph of agents breadth-first from a root node.

    After a node runs, each of its targets whose guard accepts the node's
    last event is queued. The walk ends when the queue is empty, a node
    escalates, a node fails, or ``max_steps`` node runs have happened.
    A failing node produces an event with ``error_code`` set to
    ``NODE_EXECUTION_ERROR``. The final event lists the executed nodes in
    ``custom_metadata["executed_nodes"]``.

    Args:
        nodes: The graph's nodes. Their agents become sub-agents.
        root_node: Name of the node to start from.
        max_steps: Upper bound on node runs per invocation.

    Raises:
        GraphDefinitionError: For empty graphs, duplicate node names, an
            unknown root or target, or a non-positive ``max_steps``.

    Usage::

        graph = GraphAgent(
            name="triage",
            nodes=[
                GraphNode("classify", classifier, targets=["refund", "answer"]),
                GraphNode("refund", refunds, condition=lambda ev, ctx: ctx.state.get("kind") == "refund"),
                GraphNode("answer", answerer, condition=lambda ev, ctx: ctx.state.get("kind") != "refund"),
            ],
            root_node="classify",
        )
    """

    kind: ClassVar[AgentKind] = AgentKind.GRAPH

    def __init__(
        self,
        *,
        nodes: Sequence[GraphNode],
        root_node: str,
        max_steps: int = 50,
        **kwargs: Any,
    ) -> None:
        self.nodes = _index_nodes(nodes, root_node, max_steps)
        self.root_node = root_node
        self.max_steps = max_steps
        agents: list[BaseAgent] = []
        for node in nodes:
            if not any(node.agent is a for a in agents):
                agents.append(node.agent)
        super().__init__(sub_agents=agents, **kwargs)

    def _run_impl(self, ctx: InvocationContext) -> Iterator[Event]:
        pending: deque[str] = deque([self.root_node])
        executed: list[str] = []

        while pending:
            if len(executed) >= self.max_steps:
                logger.warning("%s: stopped after max_steps=%d", self.name, self.max_steps)
                break
            node = self.nodes[pending.popleft()]
            executed.append(node.name)
            logger.debug("%s: running node %s", self.name, node.name)

            last_event: Event | None = None
            try:
                for event in node.agent.run(ctx):
                    last_event = event
                    yield event
            except FatalInvocationError:
                raise
            except Exception as exc:
                logger.error("%s: node %s failed: %s", self.name, node.name, exc)
                yield Event(
                    invocation_id=ctx.invocation_id,
                    author=self.name,
                    branch=ctx.branch,
                    error_code=NODE_EXECUTION_ERROR,
                    error_message=f"Node '{node.name}' failed: {exc}",
                    custom_metadata={"node": node.name},
                )
                return

            if ctx.end_invocation:
                return
            if last_event is not None and last_event.actions.escalate:
                logger.debug("%s: node %s escalated", self.name, node.name)
                break

            readonly = ReadonlyContext(ctx)
            for target in node.targets:
                if self.nodes[target].accepts(last_event, readonly):
                    pending.append(target)

        yield Event(
            invocation_id=ctx.invocation_id,
            author=self.name,
            branch=ctx.branch,
            turn_complete=True,
            custom_metadata={"executed_nodes": executed},
        )


def _index_nodes(
    nodes: Sequence[GraphNode], root_node: str, max_steps: int
) -> dict[str, GraphNode]:
    if not nodes:
        raise GraphDefinitionError("A graph needs at least one node")
    if max_steps < 1:
        raise GraphDefinitionError(f"max_steps must be >= 1, got {max_steps}")
    index: dict[str, GraphNode] = {}
    for node in nodes:
        if node.name in index:
            raise GraphDefinitionError(f"Duplicate node name: {node.name}")
        index[node.name] = node
    if root_node not in index:
        raise GraphDefinitionError(f"Unknown root node: {root_node}")
    for node in nodes:
        for target in node.targets:
            if target not in index:
                raise GraphDefinitionError(f"Node '{node.name}' targets unknown node '{target}'")
    return index
