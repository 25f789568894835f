"""Transfer eligibility and the processor that offers transfers to the model."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterator

from strand.agents.base import AgentKind
from strand.flows.processors import BaseRequestProcessor
from strand.tools.transfer_to_agent import TRANSFER_TO_AGENT, TransferToAgentTool

if TYPE_CHECKING:
    from strand.agents.base import BaseAgent
    from strand.agents.invocation_context import InvocationContext
    from strand.events.event import Event
    from strand.llm.models import LlmRequest


def transfer_targets(agent: BaseAgent) -> list[BaseAgent]:
    """Agents ``agent`` may hand a turn to.

    Children always; the parent and siblings only when the parent is an
    LLM agent and the corresponding transfer is not disallowed.
    """
    targets = list(agent.sub_agents)
    parent = agent.parent_agent
    if parent is None or parent.kind is not AgentKind.LLM:
        return targets
    if not getattr(agent, "disallow_transfer_to_parent", False):
        targets.append(parent)
    if not getattr(agent, "disallow_transfer_to_peers", False):
        targets.extend(peer for peer in parent.sub_agents if peer is not agent)
    return targets


def _build_instructions(agent: BaseAgent, targets: list[BaseAgent]) -> str:
    lines = ["You have a list of other agents to transfer to:", ""]
    for target in targets:
        lines.append(f"Agent name: {target.name}")
        lines.append(f"Agent description: {target.description}")
        lines.append("")
    lines.append(
        "If you are the best to answer the question according to your description, "
        "you can answer it."
    )
    lines.append("")
    lines.append(
        "If another agent is better for answering the question according to its "
        f"description, call `{TRANSFER_TO_AGENT}` function to transfer the question "
        "to that agent. When transferring, do not generate any text other than the "
        "function call."
    )
    parent = agent.parent_agent
    if parent is not None and parent in targets:
        lines.append("")
        lines.append(
            f"Your parent agent is {parent.name}. If neither the other agents nor you "
            "are best for answering the question according to the descriptions, "
            "transfer to your parent agent."
        )
    return "\n".join(lines)


class AgentTransferProcessor(BaseRequestProcessor):
    """Adds transfer instructions and the transfer tool when targets exist."""

    def run(self, ctx: InvocationContext, llm_request: LlmRequest) -> Iterator[Event]:
        agent = ctx.agent
        if agent.kind is not AgentKind.LLM:
            return
        targets = transfer_targets(agent)
        if not targets:
            return
        llm_request.append_instructions([_build_instructions(agent, targets)])
        llm_request.append_tools([TransferToAgentTool([t.name for t in targets])])
        yield from ()
