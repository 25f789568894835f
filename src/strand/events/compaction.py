"""Sliding-window history compaction.

After every ``compaction_interval`` new turns, the turns since the last
compaction (plus ``overlap_size`` earlier turns for continuity) are handed
to a summarizer. The summarizer returns one event carrying an
``EventCompaction`` marker, which the session service appends. Nothing is
deleted: the contents builder substitutes the summary for the covered
events when it assembles model input.

Usage::

    config = CompactionConfig(summarizer=LlmEventSummarizer(llm), compaction_interval=5)
    run_compaction(session, session_service, config)
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Protocol, Sequence, runtime_checkable

from pydantic import BaseModel, Field

from strand.events.actions import EventActions, EventCompaction
from strand.events.event import Event
from strand.events.history import filter_rewound_events, split_turns
from strand.exceptions import CompactionError
from strand.llm.models import LlmRequest
from strand.models.content import Content

if TYPE_CHECKING:
    from strand.llm.protocols import BaseLlm
    from strand.sessions.base import BaseSessionService
    from strand.sessions.session import Session

logger = logging.getLogger(__name__)

DEFAULT_SUMMARIZATION_PROMPT = """\
You are a helpful assistant tasked with summarizing a conversation history.
Please provide a concise summary of the following events, capturing the key information and context.
Focus on the main topics discussed, important decisions made, and any action items or results.

Events to summarize:
{events}

Provide your summary in a clear, concise format."""


@runtime_checkable
class EventSummarizer(Protocol):
    """Turns a run of events into one compaction event, or None to skip."""

    def summarize(self, events: Sequence[Event]) -> Event | None: ...


class CompactionConfig(BaseModel):
    """When and how the Runner compacts session history.

    Attributes:
        summarizer: Produces the compaction event.
        compaction_interval: New turns required before compacting.
        overlap_size: Already-compacted turns to include again.
    """

    model_config = {"arbitrary_types_allowed": True}

    summarizer: EventSummarizer
    compaction_interval: int = Field(default=10, ge=1)
    overlap_size: int = Field(default=2, ge=0)


class LlmEventSummarizer:
    """Summarizes events by asking a model.

    Args:
        llm: Any ``BaseLlm``.
        prompt: Template with an ``{events}`` placeholder.
    """

    def __init__(self, llm: BaseLlm, prompt: Optional[str] = None) -> None:
        self.llm = llm
        self.prompt = prompt or DEFAULT_SUMMARIZATION_PROMPT

    def summarize(self, events: Sequence[Event]) -> Event | None:
        if not events:
            return None

        request = LlmRequest(
            model=self.llm.model,
            contents=[Content.user(self.prompt.replace("{events}", format_events(events)))],
        )
        chunks: list[str] = []
        for response in self.llm.generate(request):
            if response.partial or response.content is None:
                continue
            chunks.append(response.content.text)
        summary = "".join(chunks).strip()
        if not summary:
            return None

        return Event(
            author="user",
            actions=EventActions(
                compaction=EventCompaction(
                    start_timestamp=events[0].timestamp,
                    end_timestamp=events[-1].timestamp,
                    compacted_content=Content.model(summary),
                )
            ),
        )


def format_events(events: Sequence[Event]) -> str:
    """Render events as timestamped transcript lines."""
    lines: list[str] = []
    for event in events:
        if event.content is None:
            continue
        stamp = datetime.fromtimestamp(event.timestamp, tz=timezone.utc).isoformat()
        for part in event.content.parts:
            if part.text:
                lines.append(f"[{stamp}] {event.author}: {part.text}")
            elif part.function_call:
                lines.append(
                    f"[{stamp}] {event.author}: Called tool '{part.function_call.name}' "
                    f"with args {json.dumps(part.function_call.args, default=str)}"
                )
            elif part.function_response:
                lines.append(
                    f"[{stamp}] {event.author}: Tool '{part.function_response.name}' "
                    f"returned: {json.dumps(part.function_response.response, default=str)}"
                )
    return "\n".join(lines)


def last_compacted_end(events: Sequence[Event]) -> float:
    """End timestamp of the newest compaction marker, or 0."""
    for event in reversed(events):
        if event.actions.compaction is not None:
            return event.actions.compaction.end_timestamp
    return 0.0


def select_events_to_compact(
    events: Sequence[Event], interval: int, overlap: int
) -> list[Event]:
    """Pick the window of events the next compaction should cover.

    Returns an empty list when fewer than ``interval`` turns have completed
    since the last compaction.
    """
    visible = filter_rewound_events(events)
    turns = split_turns(visible)
    compacted_until = last_compacted_end(visible)

    new_indices = [i for i, turn in enumerate(turns) if turn[-1].timestamp > compacted_until]
    if len(new_indices) < interval:
        logger.debug(
            "Not enough new turns for compaction: need %d, have %d",
            interval,
            len(new_indices),
        )
        return []

    start = max(0, new_indices[0] - overlap)
    return [event for turn in turns[start:] for event in turn]


def run_compaction(
    session: Session,
    session_service: BaseSessionService,
    config: CompactionConfig,
) -> Event | None:
    """Compact ``session`` if enough turns have accumulated.

    Returns:
        The appended compaction event, or None if nothing was compacted.

    Raises:
        CompactionError: If the summarizer fails. The session is unchanged.
    """
    window = select_events_to_compact(
        session.events, config.compaction_interval, config.overlap_size
    )
    if not window:
        return None

    logger.debug("Summarizing %d events in session %s", len(window), session.id)
    try:
        event = config.summarizer.summarize(window)
    except Exception as exc:
        raise CompactionError(f"Summarizer failed for session {session.id}: {exc}") from exc

    if event is None:
        return None
    if event.actions.compaction is None:
        raise CompactionError("Summarizer returned an event without a compaction marker")

    return session_service.append_event(session, event)


def apply_compaction(events: Sequence[Event], agent_name: str) -> list[Event]:
    """Replace compacted runs with their summaries.

    Walks backwards so that the newest compaction wins where windows
    overlap. Each marker becomes a model-authored event attributed to
    ``agent_name``; events older than the earliest seen window start are
    kept.
    """
    result: list[Event] = []
    earliest_start = float("inf")
    for event in reversed(events):
        compaction = event.actions.compaction
        if compaction is not None:
            result.append(
                Event(
                    author=agent_name,
                    invocation_id=event.invocation_id,
                    branch=event.branch,
                    timestamp=compaction.end_timestamp,
                    content=compaction.compacted_content,
                )
            )
            earliest_start = min(earliest_start, compaction.start_timestamp)
        elif event.timestamp < earliest_start:
            result.append(event)
    result.reverse()
    return result
