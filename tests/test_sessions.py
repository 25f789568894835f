"""Tests for the in-memory and database session services.

Every test runs against both implementations through the parametrized
``session_service`` fixture.
"""

from __future__ import annotations

import time

import pytest

from strand.events.actions import EventActions
from strand.events.event import Event
from strand.exceptions import SessionExistsError, SessionNotFoundError, StaleSessionError
from strand.models.content import Content
from strand.sessions.base import GetSessionConfig
from strand.sessions.database import DatabaseSessionService

APP = "app"
USER = "u1"


def _event(delta=None, *, timestamp=None, partial=None, text="reply") -> Event:
    kwargs = {}
    if timestamp is not None:
        kwargs["timestamp"] = timestamp
    return Event(
        invocation_id="e-1",
        author="agent",
        content=Content.model(text),
        actions=EventActions(state_delta=dict(delta or {})),
        partial=partial,
        **kwargs,
    )


class TestCreateAndGet:
    def test_create_generates_id(self, session_service):
        session = session_service.create_session(app_name=APP, user_id=USER)
        assert session.id
        assert session.events == []
        assert session.state == {}

    def test_create_with_explicit_id_and_state(self, session_service):
        session = session_service.create_session(
            app_name=APP, user_id=USER, session_id="s1", state={"count": 1}
        )
        assert session.id == "s1"
        fetched = session_service.get_session(app_name=APP, user_id=USER, session_id="s1")
        assert fetched.state == {"count": 1}

    def test_initial_state_kept_after_appends(self, session_service):
        session = session_service.create_session(
            app_name=APP,
            user_id=USER,
            session_id="s1",
            state={"count": 1, "user:theme": "dark", "gone": None},
        )
        assert session.initial_state == {"count": 1}
        session_service.append_event(session, _event({"count": 2}))

        fetched = session_service.get_session(app_name=APP, user_id=USER, session_id="s1")
        assert fetched.state == {"count": 2, "user:theme": "dark"}
        assert fetched.initial_state == {"count": 1}

    def test_duplicate_id_rejected(self, session_service):
        session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        with pytest.raises(SessionExistsError):
            session_service.create_session(app_name=APP, user_id=USER, session_id="s1")

    def test_same_id_allowed_for_other_user(self, session_service):
        session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        other = session_service.create_session(app_name=APP, user_id="u2", session_id="s1")
        assert other.user_id == "u2"

    def test_get_missing_returns_none(self, session_service):
        assert session_service.get_session(app_name=APP, user_id=USER, session_id="nope") is None

    def test_get_returns_events_in_order(self, session_service):
        session = session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        for i in range(3):
            session_service.append_event(session, _event(text=f"m{i}"))
        fetched = session_service.get_session(app_name=APP, user_id=USER, session_id="s1")
        assert [e.content.text for e in fetched.events] == ["m0", "m1", "m2"]


class TestListAndDelete:
    def test_list_returns_summaries(self, session_service):
        first = session_service.create_session(app_name=APP, user_id=USER, state={"k": 1})
        session_service.create_session(app_name=APP, user_id=USER)
        session_service.create_session(app_name=APP, user_id="other")
        session_service.append_event(first, _event())

        listed = session_service.list_sessions(app_name=APP, user_id=USER).sessions
        assert len(listed) == 2
        for summary in listed:
            assert summary.events == []
            assert summary.state == {}

    def test_delete_removes_session(self, session_service):
        session = session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        session_service.append_event(session, _event())
        session_service.delete_session(app_name=APP, user_id=USER, session_id="s1")
        assert session_service.get_session(app_name=APP, user_id=USER, session_id="s1") is None
        assert session_service.list_sessions(app_name=APP, user_id=USER).sessions == []

    def test_delete_missing_is_noop(self, session_service):
        session_service.delete_session(app_name=APP, user_id=USER, session_id="nope")

    def test_append_to_deleted_session_fails(self, session_service):
        session = session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        session_service.delete_session(app_name=APP, user_id=USER, session_id="s1")
        with pytest.raises(SessionNotFoundError):
            session_service.append_event(session, _event())


class TestAppendEvent:
    def test_delta_merged_into_handle_and_storage(self, session_service):
        session = session_service.create_session(
            app_name=APP, user_id=USER, session_id="s1", state={"a": 1, "b": 2}
        )
        session_service.append_event(session, _event({"a": 10, "b": None, "c": 3}))
        assert session.state == {"a": 10, "c": 3}
        assert len(session.events) == 1

        fetched = session_service.get_session(app_name=APP, user_id=USER, session_id="s1")
        assert fetched.state == {"a": 10, "c": 3}

    def test_partial_events_not_stored(self, session_service):
        session = session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        session_service.append_event(session, _event({"a": 1}, partial=True))
        assert session.events == []
        assert session.state == {}
        fetched = session_service.get_session(app_name=APP, user_id=USER, session_id="s1")
        assert fetched.events == []

    def test_temp_keys_never_stored(self, session_service):
        session = session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        event = _event({"temp:scratch": 1, "kept": 2})
        session_service.append_event(session, event)

        assert event.actions.state_delta == {"kept": 2}
        fetched = session_service.get_session(app_name=APP, user_id=USER, session_id="s1")
        assert fetched.state == {"kept": 2}
        assert fetched.events[0].actions.state_delta == {"kept": 2}

    def test_handle_mutation_does_not_reach_storage(self, session_service):
        session = session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        session.state["sneaky"] = True
        fetched = session_service.get_session(app_name=APP, user_id=USER, session_id="s1")
        assert "sneaky" not in fetched.state

    def test_stale_handle_rejected(self, session_service):
        first = session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        second = session_service.get_session(app_name=APP, user_id=USER, session_id="s1")
        session_service.append_event(first, _event(timestamp=time.time() + 10))
        with pytest.raises(StaleSessionError):
            session_service.append_event(second, _event())

    def test_ensure_fresh(self, session_service):
        first = session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        second = session_service.get_session(app_name=APP, user_id=USER, session_id="s1")
        session_service.ensure_fresh(second)

        session_service.append_event(first, _event(timestamp=time.time() + 10))
        session_service.ensure_fresh(first)
        with pytest.raises(StaleSessionError):
            session_service.ensure_fresh(second)

        session_service.delete_session(app_name=APP, user_id=USER, session_id="s1")
        with pytest.raises(SessionNotFoundError):
            session_service.ensure_fresh(first)

    def test_reloaded_handle_can_append(self, session_service):
        first = session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        session_service.append_event(first, _event(timestamp=time.time() + 10))
        reloaded = session_service.get_session(app_name=APP, user_id=USER, session_id="s1")
        session_service.append_event(reloaded, _event({"x": 1}, timestamp=time.time() + 20))
        assert reloaded.state == {"x": 1}


class TestScopedState:
    def test_app_state_shared_across_users(self, session_service):
        first = session_service.create_session(app_name=APP, user_id="u1")
        session_service.append_event(first, _event({"app:theme": "dark"}))
        other = session_service.create_session(app_name=APP, user_id="u2")
        assert other.state["app:theme"] == "dark"

    def test_user_state_shared_across_sessions(self, session_service):
        first = session_service.create_session(app_name=APP, user_id=USER)
        session_service.append_event(first, _event({"user:lang": "en", "local": 1}))
        second = session_service.create_session(app_name=APP, user_id=USER)
        assert second.state == {"user:lang": "en"}

    def test_user_state_not_shared_across_users(self, session_service):
        first = session_service.create_session(app_name=APP, user_id="u1")
        session_service.append_event(first, _event({"user:lang": "en"}))
        other = session_service.create_session(app_name=APP, user_id="u2")
        assert "user:lang" not in other.state

    def test_scoped_state_not_shared_across_apps(self, session_service):
        first = session_service.create_session(app_name=APP, user_id=USER)
        session_service.append_event(first, _event({"app:theme": "dark", "user:lang": "en"}))
        other = session_service.create_session(app_name="other-app", user_id=USER)
        assert other.state == {}

    def test_initial_state_scopes(self, session_service):
        session_service.create_session(
            app_name=APP, user_id=USER, state={"app:a": 1, "user:b": 2, "c": 3, "temp:d": 4}
        )
        second = session_service.create_session(app_name=APP, user_id=USER)
        assert second.state == {"app:a": 1, "user:b": 2}

    def test_deleting_scoped_key(self, session_service):
        first = session_service.create_session(app_name=APP, user_id=USER)
        session_service.append_event(first, _event({"user:lang": "en"}))
        session_service.append_event(first, _event({"user:lang": None}))
        second = session_service.create_session(app_name=APP, user_id=USER)
        assert "user:lang" not in second.state


class TestGetSessionConfig:
    def _session_with_events(self, service):
        session = service.create_session(app_name=APP, user_id=USER, session_id="s1")
        base = time.time() + 100
        for i in range(5):
            service.append_event(session, _event(text=f"m{i}", timestamp=base + i))
        return base

    def test_num_recent_events(self, session_service):
        self._session_with_events(session_service)
        fetched = session_service.get_session(
            app_name=APP, user_id=USER, session_id="s1",
            config=GetSessionConfig(num_recent_events=2),
        )
        assert [e.content.text for e in fetched.events] == ["m3", "m4"]

    def test_num_recent_zero_returns_no_events(self, session_service):
        self._session_with_events(session_service)
        fetched = session_service.get_session(
            app_name=APP, user_id=USER, session_id="s1",
            config=GetSessionConfig(num_recent_events=0),
        )
        assert fetched.events == []

    def test_after_timestamp(self, session_service):
        base = self._session_with_events(session_service)
        fetched = session_service.get_session(
            app_name=APP, user_id=USER, session_id="s1",
            config=GetSessionConfig(after_timestamp=base + 3),
        )
        assert [e.content.text for e in fetched.events] == ["m3", "m4"]

    def test_filters_do_not_change_state(self, session_service):
        session = session_service.create_session(app_name=APP, user_id=USER, session_id="s1")
        session_service.append_event(session, _event({"a": 1}))
        fetched = session_service.get_session(
            app_name=APP, user_id=USER, session_id="s1",
            config=GetSessionConfig(num_recent_events=0),
        )
        assert fetched.state == {"a": 1}


class TestDatabasePersistence:
    def test_file_database_survives_reopen(self, tmp_path):
        path = str(tmp_path / "sessions.db")
        with DatabaseSessionService(path) as service:
            session = service.create_session(app_name=APP, user_id=USER, session_id="s1")
            service.append_event(session, _event({"user:lang": "en", "n": 1}))

        with DatabaseSessionService(path) as service:
            fetched = service.get_session(app_name=APP, user_id=USER, session_id="s1")
            assert fetched.state == {"user:lang": "en", "n": 1}
            assert fetched.events[0].content.text == "reply"

    def test_event_round_trips_actions(self):
        with DatabaseSessionService() as service:
            session = service.create_session(app_name=APP, user_id=USER, session_id="s1")
            event = _event({"k": [1, 2]})
            event.actions.escalate = True
            event.long_running_tool_ids = {"c1"}
            service.append_event(session, event)
            fetched = service.get_session(app_name=APP, user_id=USER, session_id="s1")
            assert fetched.events[0] == event
