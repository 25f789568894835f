"""Validates an agent's final reply against its ``output_schema``.

The reply text is parsed as JSON (after stripping code fences or any prose
before the first ``{`` or ``[``) and validated with the pydantic model set
on the agent. A valid reply is rewritten to the model's canonical JSON. An
invalid one keeps its text and is marked with
``OUTPUT_SCHEMA_VALIDATION_FAILED``.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Iterator

from pydantic import ValidationError

from strand.flows.processors import BaseResponseProcessor
from strand.models.content import Part

if TYPE_CHECKING:
    from strand.agents.invocation_context import InvocationContext
    from strand.events.event import Event
    from strand.llm.models import LlmResponse

logger = logging.getLogger(__name__)

OUTPUT_SCHEMA_VALIDATION_FAILED = "OUTPUT_SCHEMA_VALIDATION_FAILED"

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.IGNORECASE | re.DOTALL)


class OutputSchemaProcessor(BaseResponseProcessor):
    """Parses and validates final text replies of agents with an output schema."""

    def run(self, ctx: InvocationContext, llm_response: LlmResponse) -> Iterator[Event]:
        schema = getattr(ctx.agent, "output_schema", None)
        content = llm_response.content
        if schema is None or content is None or llm_response.partial:
            return
        if any(p.function_call for p in content.parts):
            return
        text = content.text
        if not text.strip():
            return

        try:
            validated = schema.model_validate_json(strip_code_fences(text))
        except ValidationError as e:
            message = (
                f"Output schema validation failed for agent {ctx.agent.name!r}: "
                f"{e.error_count()} error(s): {e.errors()[0]['msg']}"
            )
            logger.warning("%s (reply starts %r)", message, text[:200])
            llm_response.error_code = OUTPUT_SCHEMA_VALIDATION_FAILED
            llm_response.error_message = message
            return

        normalized = validated.model_dump_json(indent=2)
        parts: list[Part] = []
        replaced = False
        for part in content.parts:
            if part.text is None or part.thought:
                parts.append(part)
            elif not replaced:
                parts.append(Part.from_text(normalized))
                replaced = True
        content.parts = parts
        logger.debug("Reply of %s validated against %s", ctx.agent.name, schema.__name__)
        yield from ()


def strip_code_fences(raw: str) -> str:
    """The JSON candidate inside ``raw``: a fenced block, or text from the first ``{``/``[`` line."""
    match = _FENCE.search(raw)
    if match and match.group(1).strip():
        return match.group(1).strip()
    lines = [line.strip() for line in raw.splitlines()]
    for i, line in enumerate(lines):
        if line.startswith(("{", "[")):
            return "\n".join(lines[i:]).strip()
    return raw.strip()
