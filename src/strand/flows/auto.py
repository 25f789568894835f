"""Tree-transferable flow: SingleFlow plus transfers within the agent tree."""

from __future__ import annotations

from strand.flows.agent_transfer import AgentTransferProcessor
from strand.flows.single import SingleFlow


class AutoFlow(SingleFlow):
    """Offers ``transfer_to_agent`` to children, and to the parent and peers when allowed."""

    def __init__(self) -> None:
        super().__init__()
        self.request_processors.append(AgentTransferProcessor())
