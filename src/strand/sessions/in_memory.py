"""In-memory session service.

Keeps app-, user- and session-scoped state separately and merges them
into every session handed out. Handles are deep copies, so a caller can
only change stored state through ``append_event``.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
import uuid
from typing import TYPE_CHECKING, Any

from strand.exceptions import SessionExistsError, SessionNotFoundError, StaleSessionError
from strand.sessions.base import (
    BaseSessionService,
    GetSessionConfig,
    ListSessionsResponse,
    filter_events,
    trim_temp_delta,
)
from strand.sessions.session import Session
from strand.sessions.state import apply_delta, merge_scoped_state, split_scoped_delta

if TYPE_CHECKING:
    from strand.events.event import Event

logger = logging.getLogger(__name__)


class InMemorySessionService(BaseSessionService):
    """Thread-safe session storage held in process memory.

    Usage::

        service = InMemorySessionService()
        session = service.create_session(app_name="app", user_id="u1")
        service.append_event(session, event)
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        # app_name -> user_id -> session_id -> stored session (session-scoped state only)
        self._sessions: dict[str, dict[str, dict[str, Session]]] = {}
        self._app_state: dict[str, dict[str, Any]] = {}
        self._user_state: dict[str, dict[str, dict[str, Any]]] = {}

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def create_session(
        self,
        *,
        app_name: str,
        user_id: str,
        state: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> Session:
        session_id = (session_id or "").strip() or uuid.uuid4().hex
        with self._lock:
            user_sessions = self._sessions.setdefault(app_name, {}).setdefault(user_id, {})
            if session_id in user_sessions:
                raise SessionExistsError(session_id)

            app_delta, user_delta, session_state = split_scoped_delta(state or {})
            apply_delta(self._app_state.setdefault(app_name, {}), app_delta)
            apply_delta(
                self._user_state.setdefault(app_name, {}).setdefault(user_id, {}),
                user_delta,
            )
            session_state = {k: v for k, v in session_state.items() if v is not None}
            stored = Session(
                id=session_id,
                app_name=app_name,
                user_id=user_id,
                state=session_state,
                initial_state=copy.deepcopy(session_state),
                last_update_time=time.time(),
            )
            user_sessions[session_id] = stored
            logger.debug("Created session %s for %s/%s", session_id, app_name, user_id)
            return self._handle(stored)

    def get_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        config: GetSessionConfig | None = None,
    ) -> Session | None:
        with self._lock:
            stored = self._lookup(app_name, user_id, session_id)
            if stored is None:
                return None
            handle = self._handle(stored)
        handle.events = filter_events(handle.events, config)
        return handle

    def list_sessions(self, *, app_name: str, user_id: str) -> ListSessionsResponse:
        with self._lock:
            user_sessions = self._sessions.get(app_name, {}).get(user_id, {})
            summaries = [
                Session(
                    id=s.id,
                    app_name=s.app_name,
                    user_id=s.user_id,
                    last_update_time=s.last_update_time,
                )
                for s in user_sessions.values()
            ]
        return ListSessionsResponse(sessions=summaries)

    def delete_session(self, *, app_name: str, user_id: str, session_id: str) -> None:
        with self._lock:
            self._sessions.get(app_name, {}).get(user_id, {}).pop(session_id, None)

    def append_event(self, session: Session, event: Event) -> Event:
        """Persist ``event`` and merge its delta into stored and handle state.

        Raises:
            SessionNotFoundError: If the session was deleted.
            StaleSessionError: If another handle appended since this one
                was loaded.
        """
        if event.partial:
            return event
        with self._lock:
            stored = self._lookup(session.app_name, session.user_id, session.id)
            if stored is None:
                raise SessionNotFoundError(session.app_name, session.user_id, session.id)
            if stored.last_update_time > session.last_update_time:
                raise StaleSessionError(session.id, session.last_update_time, stored.last_update_time)

            trim_temp_delta(event)
            app_delta, user_delta, session_delta = split_scoped_delta(
                copy.deepcopy(event.actions.state_delta)
            )
            apply_delta(self._app_state.setdefault(session.app_name, {}), app_delta)
            apply_delta(
                self._user_state.setdefault(session.app_name, {}).setdefault(session.user_id, {}),
                user_delta,
            )
            apply_delta(stored.state, session_delta)
            stored.events.append(event.model_copy(deep=True))
            update_time = max(stored.last_update_time, event.timestamp)
            stored.last_update_time = update_time

            super().append_event(session, event)
            session.last_update_time = update_time
        return event

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _lookup(self, app_name: str, user_id: str, session_id: str) -> Session | None:
        return self._sessions.get(app_name, {}).get(user_id, {}).get(session_id)

    def _handle(self, stored: Session) -> Session:
        handle = stored.model_copy(deep=True)
        handle.state = copy.deepcopy(
            merge_scoped_state(
                stored.state,
                self._app_state.get(stored.app_name, {}),
                self._user_state.get(stored.app_name, {}).get(stored.user_id, {}),
            )
        )
        return handle
