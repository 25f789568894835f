"""Abstract long-term memory contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, Field

from strand.models.content import Content

if TYPE_CHECKING:
    from strand.sessions.session import Session


class MemoryEntry(BaseModel):
    """One remembered piece of conversation.

    Attributes:
        content: The remembered content.
        author: Who produced it.
        timestamp: ISO-8601 time the content was produced.
        score: Relevance to the query that returned it (higher is better).
    """

    content: Content
    author: Optional[str] = None
    timestamp: Optional[str] = None
    score: float = 0.0


class SearchMemoryResponse(BaseModel):
    """Memory entries ranked by relevance, best first."""

    memories: list[MemoryEntry] = Field(default_factory=list)


class BaseMemoryService(ABC):
    """Storage contract for long-term memory."""

    @abstractmethod
    def add_session_to_memory(self, session: Session) -> None:
        """Ingest a session's events into memory."""
        ...

    @abstractmethod
    def search_memory(self, *, app_name: str, user_id: str, query: str) -> SearchMemoryResponse:
        """Return memories relevant to ``query`` for the given user."""
        ...
