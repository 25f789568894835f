"""Isolated flow: the agent and its own tools only, no transfers."""

from __future__ import annotations

from strand.flows.auth import CredentialResumeProcessor
from strand.flows.base import BaseLlmFlow
from strand.flows.output_schema import OutputSchemaProcessor
from strand.flows.processors import (
    BasicProcessor,
    ContentsProcessor,
    IdentityProcessor,
    InstructionsProcessor,
)


class SingleFlow(BaseLlmFlow):
    """Runs one agent's step loop without offering transfers."""

    def __init__(self) -> None:
        self.request_processors = [
            BasicProcessor(),
            CredentialResumeProcessor(),
            InstructionsProcessor(),
            IdentityProcessor(),
            ContentsProcessor(),
        ]
        self.response_processors = [OutputSchemaProcessor()]
