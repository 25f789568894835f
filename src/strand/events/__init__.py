"""Event record, side-effect manifest, and history helpers."""

from strand.events.actions import EventActions, EventCompaction
from strand.events.compaction import (
    CompactionConfig,
    EventSummarizer,
    LlmEventSummarizer,
    run_compaction,
)
from strand.events.event import Event, new_event_id
from strand.events.history import filter_rewound_events, split_turns

__all__ = [
    "CompactionConfig",
    "Event",
    "EventActions",
    "EventCompaction",
    "EventSummarizer",
    "LlmEventSummarizer",
    "filter_rewound_events",
    "new_event_id",
    "run_compaction",
    "split_turns",
]
