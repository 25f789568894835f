"""Session model."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field

from strand.events.event import Event


class Session(BaseModel):
    """An ordered event log plus the state merged from it.

    Attributes:
        id: Session id, unique per (app_name, user_id).
        app_name: Owning application.
        user_id: Owning user.
        state: Merged state. Includes ``app:`` and ``user:`` keys shared
            with other sessions. Mutated only by the session service.
        initial_state: Session-scoped state the session was created with.
            Shared ``app:`` and ``user:`` keys are not recorded here.
        events: Events in append order.
        last_update_time: Time of the last append, used to detect stale
            handles.
    """

    id: str
    app_name: str
    user_id: str
    state: dict[str, Any] = Field(default_factory=dict)
    initial_state: dict[str, Any] = Field(default_factory=dict)
    events: list[Event] = Field(default_factory=list)
    last_update_time: float = Field(default_factory=time.time)
