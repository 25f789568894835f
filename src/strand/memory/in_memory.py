"""Keyword-matching memory service for prototyping and tests."""

from __future__ import annotations

import re
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from strand.memory.base import BaseMemoryService, MemoryEntry, SearchMemoryResponse

if TYPE_CHECKING:
    from strand.events.event import Event
    from strand.sessions.session import Session

_WORD_RE = re.compile(r"[A-Za-z]+")


def _words(text: str) -> set[str]:
    return {w.lower() for w in _WORD_RE.findall(text)}


class InMemoryMemoryService(BaseMemoryService):
    """Stores session events in memory and ranks them by shared words.

    An event matches when it shares at least one word with the query; the
    score is the number of distinct query words it contains.
    """

    def __init__(self) -> None:
        # "app/user" -> session id -> events with text content
        self._session_events: dict[str, dict[str, list[Event]]] = {}
        self._lock = threading.Lock()

    def add_session_to_memory(self, session: Session) -> None:
        events = [
            e.model_copy(deep=True)
            for e in session.events
            if e.content is not None and e.content.text
        ]
        with self._lock:
            self._session_events.setdefault(f"{session.app_name}/{session.user_id}", {})[
                session.id
            ] = events

    def search_memory(self, *, app_name: str, user_id: str, query: str) -> SearchMemoryResponse:
        query_words = _words(query)
        if not query_words:
            return SearchMemoryResponse()

        with self._lock:
            sessions = list(self._session_events.get(f"{app_name}/{user_id}", {}).values())

        scored: list[MemoryEntry] = []
        for events in sessions:
            for event in events:
                matched = query_words & _words(event.content.text)
                if not matched:
                    continue
                scored.append(
                    MemoryEntry(
                        content=event.content,
                        author=event.author,
                        timestamp=datetime.fromtimestamp(event.timestamp, tz=timezone.utc).isoformat(),
                        score=float(len(matched)),
                    )
                )
        scored.sort(key=lambda m: m.score, reverse=True)
        return SearchMemoryResponse(memories=scored)
