"""SQLite implementations of repository interfaces.

All repositories use SQLAlchemy 2.0-style queries (select() + session.execute()).
Each repository takes a Session in its constructor.
"""

from __future__ import annotations

from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from strand.storage.repositories import EventRepository, SessionRepository, StateRepository
from strand.storage.schema import AppStateRow, EventRow, SessionRow, UserStateRow


class SqliteSessionRepository(SessionRepository):
    """SQLite implementation of session repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, app_name: str, user_id: str, session_id: str) -> SessionRow | None:
        stmt = select(SessionRow).where(
            SessionRow.app_name == app_name,
            SessionRow.user_id == user_id,
            SessionRow.id == session_id,
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def save(self, row: SessionRow) -> None:
        self._session.add(row)
        self._session.flush()

    def list_for_user(self, app_name: str, user_id: str) -> Sequence[SessionRow]:
        stmt = (
            select(SessionRow)
            .where(SessionRow.app_name == app_name, SessionRow.user_id == user_id)
            .order_by(SessionRow.update_time.desc())
        )
        return self._session.execute(stmt).scalars().all()

    def delete(self, app_name: str, user_id: str, session_id: str) -> bool:
        """Delete events first so backends without cascading FKs stay consistent."""
        self._session.execute(
            delete(EventRow).where(
                EventRow.app_name == app_name,
                EventRow.user_id == user_id,
                EventRow.session_id == session_id,
            )
        )
        row = self.get(app_name, user_id, session_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True


class SqliteEventRepository(EventRepository):
    """SQLite implementation of event repository."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def append(self, row: EventRow) -> None:
        stmt = select(func.max(EventRow.seq)).where(
            EventRow.app_name == row.app_name,
            EventRow.user_id == row.user_id,
            EventRow.session_id == row.session_id,
        )
        current = self._session.execute(stmt).scalar()
        row.seq = 0 if current is None else current + 1
        self._session.add(row)
        self._session.flush()

    def list_for_session(
        self,
        app_name: str,
        user_id: str,
        session_id: str,
        *,
        after_timestamp: float | None = None,
        limit_recent: int | None = None,
    ) -> Sequence[EventRow]:
        stmt = select(EventRow).where(
            EventRow.app_name == app_name,
            EventRow.user_id == user_id,
            EventRow.session_id == session_id,
        )
        if after_timestamp is not None:
            stmt = stmt.where(EventRow.timestamp >= after_timestamp)
        if limit_recent is not None:
            if limit_recent == 0:
                return []
            # Take the newest N, then restore append order
            stmt = stmt.order_by(EventRow.seq.desc()).limit(limit_recent)
            rows = list(self._session.execute(stmt).scalars().all())
            rows.reverse()
            return rows
        stmt = stmt.order_by(EventRow.seq)
        return self._session.execute(stmt).scalars().all()


class SqliteStateRepository(StateRepository):
    """SQLite implementation of app/user state repository.

    JSON columns are replaced wholesale on save so SQLAlchemy detects
    the change without mutable-tracking extensions.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get_app_state(self, app_name: str) -> AppStateRow | None:
        stmt = select(AppStateRow).where(AppStateRow.app_name == app_name)
        return self._session.execute(stmt).scalar_one_or_none()

    def get_user_state(self, app_name: str, user_id: str) -> UserStateRow | None:
        stmt = select(UserStateRow).where(
            UserStateRow.app_name == app_name, UserStateRow.user_id == user_id
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def save_app_state(self, app_name: str, state: dict, update_time: float) -> None:
        row = self.get_app_state(app_name)
        if row is None:
            row = AppStateRow(app_name=app_name, state_json=dict(state), update_time=update_time)
            self._session.add(row)
        else:
            row.state_json = dict(state)
            row.update_time = update_time
        self._session.flush()

    def save_user_state(
        self, app_name: str, user_id: str, state: dict, update_time: float
    ) -> None:
        row = self.get_user_state(app_name, user_id)
        if row is None:
            row = UserStateRow(
                app_name=app_name,
                user_id=user_id,
                state_json=dict(state),
                update_time=update_time,
            )
            self._session.add(row)
        else:
            row.state_json = dict(state)
            row.update_time = update_time
        self._session.flush()
