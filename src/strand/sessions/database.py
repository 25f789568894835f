"""Database-backed session service on SQLAlchemy.

Sessions, events and scoped state live in the tables defined in
``strand.storage.schema``. Each operation runs in its own short-lived
SQLAlchemy session; ``append_event`` checks the stored update time inside
the same transaction that writes the event.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import TYPE_CHECKING, Any

from sqlalchemy import Engine

from strand.events.event import Event
from strand.exceptions import SessionExistsError, SessionNotFoundError, StaleSessionError
from strand.sessions.base import (
    BaseSessionService,
    GetSessionConfig,
    ListSessionsResponse,
    trim_temp_delta,
)
from strand.sessions.session import Session
from strand.sessions.state import apply_delta, merge_scoped_state, split_scoped_delta
from strand.storage.engine import create_session_factory, create_strand_engine, init_db
from strand.storage.schema import EventRow, SessionRow
from strand.storage.sqlite import (
    SqliteEventRepository,
    SqliteSessionRepository,
    SqliteStateRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session as DbSession

logger = logging.getLogger(__name__)


class DatabaseSessionService(BaseSessionService):
    """Session service persisting to any SQLAlchemy-supported database.

    Usage::

        service = DatabaseSessionService("sessions.db")
        session = service.create_session(app_name="app", user_id="u1")
        ...
        service.close()
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        *,
        url: str | None = None,
        engine: Engine | None = None,
    ) -> None:
        """Open (and initialize if needed) a session database.

        Args:
            db_path: SQLite file path or ``":memory:"``. Ignored when *url*
                or *engine* is given.
            url: Full SQLAlchemy URL.
            engine: Pre-built engine. The caller keeps ownership; ``close()``
                does not dispose it.
        """
        self._owns_engine = engine is None
        self._engine = engine or create_strand_engine(db_path, url=url)
        init_db(self._engine)
        self._session_factory = create_session_factory(self._engine)
        self._lock = threading.Lock()

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
        now = time.time()
        with self._lock, self._session_factory() as db:
            sessions = SqliteSessionRepository(db)
            if sessions.get(app_name, user_id, session_id) is not None:
                raise SessionExistsError(session_id)

            app_delta, user_delta, session_state = split_scoped_delta(state or {})
            app_state, user_state = self._apply_scoped(
                db, app_name, user_id, app_delta, user_delta, now
            )
            session_state = {k: v for k, v in session_state.items() if v is not None}
            sessions.save(
                SessionRow(
                    app_name=app_name,
                    user_id=user_id,
                    id=session_id,
                    state_json=session_state,
                    initial_state_json=dict(session_state),
                    create_time=now,
                    update_time=now,
                )
            )
            db.commit()

        logger.debug("Created session %s for %s/%s", session_id, app_name, user_id)
        return Session(
            id=session_id,
            app_name=app_name,
            user_id=user_id,
            state=merge_scoped_state(session_state, app_state, user_state),
            initial_state=dict(session_state),
            last_update_time=now,
        )

    def get_session(
        self,
        *,
        app_name: str,
        user_id: str,
        session_id: str,
        config: GetSessionConfig | None = None,
    ) -> Session | None:
        with self._session_factory() as db:
            row = SqliteSessionRepository(db).get(app_name, user_id, session_id)
            if row is None:
                return None
            event_rows = SqliteEventRepository(db).list_for_session(
                app_name,
                user_id,
                session_id,
                after_timestamp=config.after_timestamp if config else None,
                limit_recent=config.num_recent_events if config else None,
            )
            states = SqliteStateRepository(db)
            app_row = states.get_app_state(app_name)
            user_row = states.get_user_state(app_name, user_id)
            return Session(
                id=row.id,
                app_name=row.app_name,
                user_id=row.user_id,
                state=merge_scoped_state(
                    row.state_json or {},
                    app_row.state_json if app_row else {},
                    user_row.state_json if user_row else {},
                ),
                initial_state=row.initial_state_json or {},
                events=[Event.model_validate_json(r.payload_json) for r in event_rows],
                last_update_time=row.update_time,
            )

    def list_sessions(self, *, app_name: str, user_id: str) -> ListSessionsResponse:
        with self._session_factory() as db:
            rows = SqliteSessionRepository(db).list_for_user(app_name, user_id)
            return ListSessionsResponse(
                sessions=[
                    Session(
                        id=r.id,
                        app_name=r.app_name,
                        user_id=r.user_id,
                        last_update_time=r.update_time,
                    )
                    for r in rows
                ]
            )

    def delete_session(self, *, app_name: str, user_id: str, session_id: str) -> None:
        with self._lock, self._session_factory() as db:
            SqliteSessionRepository(db).delete(app_name, user_id, session_id)
            db.commit()

    def append_event(self, session: Session, event: Event) -> Event:
        """Persist ``event`` and merge its delta.

        Raises:
            SessionNotFoundError: If the session row no longer exists.
            StaleSessionError: If the stored session was updated after the
                handle was loaded.
        """
        if event.partial:
            return event
        with self._lock, self._session_factory() as db:
            sessions = SqliteSessionRepository(db)
            row = sessions.get(session.app_name, session.user_id, session.id)
            if row is None:
                raise SessionNotFoundError(session.app_name, session.user_id, session.id)
            if row.update_time > session.last_update_time:
                raise StaleSessionError(session.id, session.last_update_time, row.update_time)

            trim_temp_delta(event)
            update_time = max(row.update_time, event.timestamp)
            app_delta, user_delta, session_delta = split_scoped_delta(event.actions.state_delta)
            self._apply_scoped(db, session.app_name, session.user_id, app_delta, user_delta, update_time)
            if session_delta:
                new_state = dict(row.state_json or {})
                apply_delta(new_state, session_delta)
                row.state_json = new_state
            row.update_time = update_time

            SqliteEventRepository(db).append(
                EventRow(
                    app_name=session.app_name,
                    user_id=session.user_id,
                    session_id=session.id,
                    id=event.id,
                    invocation_id=event.invocation_id,
                    author=event.author,
                    branch=event.branch,
                    timestamp=event.timestamp,
                    payload_json=event.model_dump_json(),
                )
            )
            db.commit()

        super().append_event(session, event)
        session.last_update_time = update_time
        return event

    def close(self) -> None:
        if self._owns_engine:
            self._engine.dispose()

    def __enter__(self) -> DatabaseSessionService:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_scoped(
        db: DbSession,
        app_name: str,
        user_id: str,
        app_delta: dict[str, Any],
        user_delta: dict[str, Any],
        update_time: float,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """Merge app/user deltas and return the resulting states."""
        states = SqliteStateRepository(db)
        app_row = states.get_app_state(app_name)
        app_state = dict(app_row.state_json) if app_row else {}
        if app_delta:
            apply_delta(app_state, app_delta)
            states.save_app_state(app_name, app_state, update_time)

        user_row = states.get_user_state(app_name, user_id)
        user_state = dict(user_row.state_json) if user_row else {}
        if user_delta:
            apply_delta(user_state, user_delta)
            states.save_user_state(app_name, user_id, user_state, update_time)
        return app_state, user_state
