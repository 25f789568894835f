"""Tests for delta-tracked State and scoped-state helpers."""

from __future__ import annotations

import pytest
from hypothesis import given, settings

from strand.sessions.in_memory import InMemorySessionService
from strand.sessions.state import (
    State,
    apply_delta,
    merge_scoped_state,
    split_scoped_delta,
)
from tests.strategies import delta_events, initial_states


class TestState:
    def test_reads_see_delta_over_value(self):
        state = State({"a": 1, "b": 2}, {"b": 3})
        assert state.get("a") == 1
        assert state.get("b") == 3

    def test_writes_only_touch_delta(self):
        value = {"a": 1}
        delta: dict = {}
        state = State(value, delta)
        state["a"] = 5
        state.set("b", 6)
        assert value == {"a": 1}
        assert delta == {"a": 5, "b": 6}
        assert state.has_delta()

    def test_delete_records_none(self):
        state = State({"a": 1}, {})
        state.delete("a")
        assert not state.has("a")
        assert "a" not in state
        assert state.get("a", "gone") == "gone"
        assert state.delta == {"a": None}

    def test_getitem_missing_raises(self):
        with pytest.raises(KeyError):
            State({}, {})["missing"]

    def test_update_and_snapshot(self):
        state = State({"a": 1, "b": 2}, {})
        state.update({"b": None, "c": 3})
        assert state.to_dict() == {"a": 1, "c": 3}
        assert sorted(state) == ["a", "c"]

    def test_no_delta_initially(self):
        assert not State({"a": 1}, {}).has_delta()


class TestScopedState:
    def test_split_strips_prefixes_and_drops_temp(self):
        app, user, session = split_scoped_delta(
            {"app:theme": "dark", "user:lang": "en", "temp:scratch": 1, "count": 2}
        )
        assert app == {"theme": "dark"}
        assert user == {"lang": "en"}
        assert session == {"count": 2}

    def test_merge_restores_prefixes(self):
        merged = merge_scoped_state({"count": 2}, {"theme": "dark"}, {"lang": "en"})
        assert merged == {"count": 2, "app:theme": "dark", "user:lang": "en"}

    def test_apply_delta_none_deletes(self):
        target = {"a": 1, "b": 2}
        apply_delta(target, {"a": None, "c": 3})
        assert target == {"b": 2, "c": 3}


class TestStateReconstruction:
    @given(initial=initial_states, events=delta_events())
    @settings(max_examples=50, deadline=None)
    def test_state_is_initial_plus_ordered_deltas(self, initial, events):
        """Session state equals the initial state with every delta merged in append order."""
        service = InMemorySessionService()
        session = service.create_session(app_name="app", user_id="u", state=dict(initial))
        expected = dict(initial)
        for event in events:
            event.timestamp = max(event.timestamp, session.last_update_time)
            apply_delta(expected, event.actions.state_delta)
            service.append_event(session, event)

        assert session.state == expected
        reloaded = service.get_session(app_name="app", user_id="u", session_id=session.id)
        assert reloaded.state == expected
