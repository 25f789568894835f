"""Session storage: the single write path for conversation history and state."""

from strand.sessions.base import BaseSessionService, GetSessionConfig, ListSessionsResponse
from strand.sessions.database import DatabaseSessionService
from strand.sessions.in_memory import InMemorySessionService
from strand.sessions.session import Session
from strand.sessions.state import APP_PREFIX, TEMP_PREFIX, USER_PREFIX, State

__all__ = [
    "APP_PREFIX",
    "BaseSessionService",
    "DatabaseSessionService",
    "GetSessionConfig",
    "InMemorySessionService",
    "ListSessionsResponse",
    "Session",
    "State",
    "TEMP_PREFIX",
    "USER_PREFIX",
]
