"""Helpers for reading a session's event log.

The raw log is append-only. Rewind and compaction never delete events;
they append markers, and these helpers compute what remains visible.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from strand.events.event import Event


def first_index_by_invocation(events: Sequence[Event]) -> dict[str, int]:
    """Map each invocation id to the index of its first event."""
    index: dict[str, int] = {}
    for i, event in enumerate(events):
        if event.invocation_id:
            index.setdefault(event.invocation_id, i)
    return index


def filter_rewound_events(events: Sequence[Event]) -> list[Event]:
    """Return the visible log after applying rewind markers.

    Walks the log backwards. A rewind marker hides itself and every event
    from the first event of its target invocation up to the marker.
    Markers whose target is missing or later than the marker only hide
    themselves.
    """
    first_index = first_index_by_invocation(events)
    visible: list[Event] = []
    i = len(events) - 1
    while i >= 0:
        event = events[i]
        target = event.actions.rewind_before_invocation_id
        if target:
            target_index = first_index.get(target)
            if target_index is not None and target_index < i:
                i = target_index
        else:
            visible.append(event)
        i -= 1
    visible.reverse()
    return visible


def is_marker_event(event: Event) -> bool:
    """True for events that only carry rewind or compaction bookkeeping."""
    return bool(event.actions.rewind_before_invocation_id or event.actions.compaction)


def is_turn_start(event: Event) -> bool:
    """True for the user message that opens a turn."""
    return event.author == "user" and not is_marker_event(event)


def split_turns(events: Sequence[Event]) -> list[list[Event]]:
    """Group non-marker events into turns.

    A turn starts at each user-authored message. Events before the first
    user message form their own leading turn.
    """
    turns: list[list[Event]] = []
    for event in events:
        if is_marker_event(event):
            continue
        if is_turn_start(event) or not turns:
            turns.append([])
        turns[-1].append(event)
    return turns
