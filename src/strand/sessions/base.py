"""Abstract session service contract.

The session service is the single write path for session state: callers
hand it events, and it merges their state deltas. Nothing else mutates
``Session.state``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, Field

from strand.exceptions import SessionNotFoundError, StaleSessionError
from strand.sessions.session import Session
from strand.sessions.state import TEMP_PREFIX, apply_delta

if TYPE_CHECKING:
    from strand.events.event import Event


class GetSessionConfig(BaseModel):
    """Filters applied to the events of a fetched session.

    Attributes:
        num_recent_events: Keep only the last N events.
        after_timestamp: Keep only events at or after this time.
    """

    num_recent_events: Optional[int] = Field(default=None, ge=0)
    after_timestamp: Optional[float] = None


class ListSessionsResponse(BaseModel):
    """Session summaries. Summaries carry no events and no state."""

    sessions: list[Session] = Field(default_factory=list)


class BaseSessionService(ABC):
    """Storage contract for sessions."""

    @abstractmethod
    def create_session(
        self,
        *,
        app_name: str,
        user_id: str,
        state: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> Session:
        """Create a new session.

        Raises:
            SessionExistsError: If ``session_id`` is already taken.
        """
        ...

    @abstractmethod
    def get_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        config: GetSessionConfig | None = None,
    ) -> Session | None:
        """Fetch a session. Returns None if not found."""
        ...

    @abstractmethod
    def list_sessions(self, *, app_name: str, user_id: str) -> ListSessionsResponse:
        """List a user's sessions without events or state."""
        ...

    @abstractmethod
    def delete_session(self, *, app_name: str, user_id: str, session_id: str) -> None:
        """Delete a session and its events. Deleting a missing session is a no-op."""
        ...

    def append_event(self, session: Session, event: Event) -> Event:
        """Append an event to ``session`` and merge its state delta.

        Partial events are returned untouched. ``temp:`` keys are removed
        from the delta before anything is merged or stored. Implementations
        persist first and then call this method to update the handle.

        Args:
            session: The caller's session handle.
            event: Event to append.

        Returns:
            The appended event.
        """
        if event.partial:
            return event
        trim_temp_delta(event)
        apply_delta(session.state, event.actions.state_delta)
        session.events.append(event)
        session.last_update_time = max(session.last_update_time, event.timestamp)
        return event

    def ensure_fresh(self, session: Session) -> None:
        """Check that ``append_event`` would accept ``session`` right now.

        Raises:
            SessionNotFoundError: If the session no longer exists.
            StaleSessionError: If the stored session was updated after the
                handle was loaded.
        """
        stored = self.get_session(
            app_name=session.app_name,
            user_id=session.user_id,
            session_id=session.id,
            config=GetSessionConfig(num_recent_events=0),
        )
        if stored is None:
            raise SessionNotFoundError(session.app_name, session.user_id, session.id)
        if stored.last_update_time > session.last_update_time:
            raise StaleSessionError(session.id, session.last_update_time, stored.last_update_time)

    def close(self) -> None:
        """Release underlying resources."""


def trim_temp_delta(event: Event) -> None:
    """Drop ``temp:`` keys from an event's state delta in place."""
    delta = event.actions.state_delta
    if any(key.startswith(TEMP_PREFIX) for key in delta):
        event.actions.state_delta = {
            k: v for k, v in delta.items() if not k.startswith(TEMP_PREFIX)
        }


def filter_events(events: list[Event], config: GetSessionConfig | None) -> list[Event]:
    """Apply GetSessionConfig filters to an ordered event list."""
    if config is None:
        return events
    if config.after_timestamp is not None:
        events = [e for e in events if e.timestamp >= config.after_timestamp]
    if config.num_recent_events is not None:
        events = events[-config.num_recent_events:] if config.num_recent_events else []
    return events
