"""Side-effect manifest attached to every event."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from strand.models.auth import AuthConfig
from strand.models.content import Content


class EventCompaction(BaseModel):
    """Marks a contiguous run of earlier events as summarized.

    Events whose timestamps fall inside ``[start_timestamp, end_timestamp]``
    are replaced by ``compacted_content`` when building model contents.
    """

    start_timestamp: float
    end_timestamp: float
    compacted_content: Content


class EventActions(BaseModel):
    """Actions an event asks the runtime to apply.

    Attributes:
        skip_summarization: The function response is shown to the user
            as-is instead of being summarized by the model.
        state_delta: Key/value changes merged into session state on append.
            A ``None`` value deletes the key.
        artifact_delta: Filename to saved version.
        transfer_to_agent: Name of the agent that continues the turn.
        escalate: Asks the enclosing composite agent to stop.
        requested_auth_configs: Function-call id to the credential the tool
            is waiting for.
        compaction: Summary replacing earlier events.
        rewind_before_invocation_id: Hides this invocation and everything
            after it from the visible log.
    """

    skip_summarization: Optional[bool] = None
    state_delta: dict[str, Any] = Field(default_factory=dict)
    artifact_delta: dict[str, int] = Field(default_factory=dict)
    transfer_to_agent: Optional[str] = None
    escalate: Optional[bool] = None
    requested_auth_configs: dict[str, AuthConfig] = Field(default_factory=dict)
    compaction: Optional[EventCompaction] = None
    rewind_before_invocation_id: Optional[str] = None

    def merge(self, other: EventActions) -> None:
        """Fold ``other`` into this manifest in place.

        Deltas and credential requests are unioned (later wins per key);
        scalar flags are taken from ``other`` when set.
        """
        self.state_delta.update(other.state_delta)
        self.artifact_delta.update(other.artifact_delta)
        self.requested_auth_configs.update(other.requested_auth_configs)
        for name in (
            "skip_summarization",
            "transfer_to_agent",
            "escalate",
            "compaction",
            "rewind_before_invocation_id",
        ):
            value = getattr(other, name)
            if value is not None:
                setattr(self, name, value)
