"""Delta-tracked key/value state.

A ``State`` pairs the committed session state with a pending delta. Reads
see the committed value overlaid with the delta; writes only touch the
delta. The session service merges the delta when the event carrying it is
appended, so the committed mapping is never written through this class.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping

APP_PREFIX = "app:"
USER_PREFIX = "user:"
TEMP_PREFIX = "temp:"

_MISSING = object()


class State:
    """A committed mapping plus a pending delta.

    Usage::

        state = State(session.state, event_actions.state_delta)
        state["counter"] = state.get("counter", 0) + 1
        assert state.has_delta()
    """

    def __init__(self, value: Mapping[str, Any], delta: dict[str, Any]) -> None:
        self._value = value
        self._delta = delta

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._delta:
            value = self._delta[key]
            return default if value is None else value
        return self._value.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._delta[key] = value

    def delete(self, key: str) -> None:
        """Record a deletion. Applied as removal when the delta is merged."""
        self._delta[key] = None

    def has(self, key: str) -> bool:
        if key in self._delta:
            return self._delta[key] is not None
        return key in self._value

    def has_delta(self) -> bool:
        return bool(self._delta)

    def update(self, delta: Mapping[str, Any]) -> None:
        self._delta.update(delta)

    def to_dict(self) -> dict[str, Any]:
        """Snapshot of the value merged with the delta."""
        merged = dict(self._value)
        for key, value in self._delta.items():
            if value is None:
                merged.pop(key, None)
            else:
                merged[key] = value
        return merged

    @property
    def delta(self) -> dict[str, Any]:
        return self._delta

    def __getitem__(self, key: str) -> Any:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            raise KeyError(key)
        return value

    def __setitem__(self, key: str, value: Any) -> None:
        self.set(key, value)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_dict())

    def __repr__(self) -> str:
        return f"State(value={dict(self._value)!r}, delta={self._delta!r})"


def apply_delta(target: dict[str, Any], delta: Mapping[str, Any]) -> None:
    """Merge ``delta`` into ``target`` in place. ``None`` deletes the key."""
    for key, value in delta.items():
        if value is None:
            target.pop(key, None)
        else:
            target[key] = value


def split_scoped_delta(
    delta: Mapping[str, Any],
) -> tuple[dict[str, Any], dict[str, Any], dict[str, Any]]:
    """Split a delta into (app, user, session) parts.

    App and user keys lose their prefix. ``temp:`` keys are dropped.
    """
    app: dict[str, Any] = {}
    user: dict[str, Any] = {}
    session: dict[str, Any] = {}
    for key, value in delta.items():
        if key.startswith(TEMP_PREFIX):
            continue
        if key.startswith(APP_PREFIX):
            app[key[len(APP_PREFIX):]] = value
        elif key.startswith(USER_PREFIX):
            user[key[len(USER_PREFIX):]] = value
        else:
            session[key] = value
    return app, user, session


def merge_scoped_state(
    session_state: Mapping[str, Any],
    app_state: Mapping[str, Any],
    user_state: Mapping[str, Any],
) -> dict[str, Any]:
    """Build the merged view: session keys plus prefixed app/user keys."""
    merged = dict(session_state)
    for key, value in app_state.items():
        merged[APP_PREFIX + key] = value
    for key, value in user_state.items():
        merged[USER_PREFIX + key] = value
    return merged


def is_session_scoped(key: str) -> bool:
    """True for keys that belong to a single session."""
    return not key.startswith((APP_PREFIX, USER_PREFIX, TEMP_PREFIX))
