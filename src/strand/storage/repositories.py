"""Abstract repository interfaces for Strand storage.

Defines ABC interfaces for all database operations. No SQLAlchemy
imports here -- pure abstract contracts.

Concrete implementations are in sqlite.py.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from strand.storage.schema import AppStateRow, EventRow, SessionRow, UserStateRow


class SessionRepository(ABC):
    """Abstract interface for session header storage."""

    @abstractmethod
    def get(self, app_name: str, user_id: str, session_id: str) -> SessionRow | None:
        """Get a session row. Returns None if not found."""
        ...

    @abstractmethod
    def save(self, row: SessionRow) -> None:
        """Insert or update a session row."""
        ...

    @abstractmethod
    def list_for_user(self, app_name: str, user_id: str) -> Sequence[SessionRow]:
        """List a user's sessions ordered by last update (newest first)."""
        ...

    @abstractmethod
    def delete(self, app_name: str, user_id: str, session_id: str) -> bool:
        """Delete a session and its events. Returns True if a row was removed."""
        ...


class EventRepository(ABC):
    """Abstract interface for event storage."""

    @abstractmethod
    def append(self, row: EventRow) -> None:
        """Append an event row. ``row.seq`` is assigned by the repository."""
        ...

    @abstractmethod
    def list_for_session(
        self,
        app_name: str,
        user_id: str,
        session_id: str,
        *,
        after_timestamp: float | None = None,
        limit_recent: int | None = None,
    ) -> Sequence[EventRow]:
        """Get a session's events in append order.

        Args:
            after_timestamp: Only events at or after this time.
            limit_recent: Only the last N matching events.
        """
        ...


class StateRepository(ABC):
    """Abstract interface for app- and user-scoped state."""

    @abstractmethod
    def get_app_state(self, app_name: str) -> AppStateRow | None:
        ...

    @abstractmethod
    def get_user_state(self, app_name: str, user_id: str) -> UserStateRow | None:
        ...

    @abstractmethod
    def save_app_state(self, app_name: str, state: dict, update_time: float) -> None:
        """Replace the stored app state."""
        ...

    @abstractmethod
    def save_user_state(
        self, app_name: str, user_id: str, state: dict, update_time: float
    ) -> None:
        """Replace the stored user state."""
        ...
