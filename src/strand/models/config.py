"""Configuration models for Strand.

RunConfig holds per-invocation runtime settings.
GenerationConfig holds fully-typed sampling parameters forwarded to models.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields as dc_fields
from typing import Optional

from pydantic import BaseModel, Field


class StreamingMode(str, enum.Enum):
    """How model output is delivered to the flow."""

    NONE = "none"
    SSE = "sse"


class RunConfig(BaseModel):
    """Per-invocation runtime configuration.

    Attributes:
        max_llm_calls: Ceiling on model calls across one top-level turn.
            Values <= 0 disable the ceiling.
        streaming_mode: ``SSE`` asks models for partial responses.
        long_running_timeout: Seconds a long-running tool call may stay
            pending before the runner answers it with a timeout error.
            ``None`` keeps pending calls indefinitely.
    """

    max_llm_calls: int = 500
    streaming_mode: StreamingMode = StreamingMode.NONE
    long_running_timeout: Optional[float] = Field(default=None, gt=0)


_ALIASES: dict[str, str] = {
    "stop": "stop_sequences",
    "max_completion_tokens": "max_tokens",
}


@dataclass(frozen=True)
class GenerationConfig:
    """Sampling parameters for a model call.

    All fields are Optional -- None means 'not set / use the provider default.'

    Example::

        config = GenerationConfig(temperature=0.2, max_tokens=512)
    """

    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    stop_sequences: tuple[str, ...] | None = None
    seed: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> GenerationConfig:
        """Build from a plain dict, accepting common provider aliases.

        Unknown keys are ignored. Lists are converted to tuples.
        """
        names = {f.name for f in dc_fields(cls)}
        kwargs: dict = {}
        for key, value in data.items():
            key = _ALIASES.get(key, key)
            if key not in names:
                continue
            if isinstance(value, list):
                value = tuple(value)
            kwargs[key] = value
        return cls(**kwargs)

    def to_dict(self) -> dict:
        """Serialize the fields that are set."""
        result: dict = {}
        for f in dc_fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            result[f.name] = list(value) if isinstance(value, tuple) else value
        return result
