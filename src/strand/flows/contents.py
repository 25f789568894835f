"""Build the model-facing conversation from a session's event log.

The pipeline, in order:

1. Drop events hidden by rewind markers.
2. Substitute compaction summaries for the events they cover.
3. Keep only events with content that belong to the current branch and
   are not credential-request bookkeeping.
4. Present other agents' messages as "For context:" user content.
5. Move asynchronous function responses next to their calls.
6. Strip client-generated call ids.
"""

from __future__ import annotations

import json
from typing import Sequence

from strand.events.compaction import apply_compaction
from strand.events.event import Event
from strand.events.history import filter_rewound_events, is_marker_event
from strand.flows.functions import REQUEST_CREDENTIAL, remove_client_call_ids
from strand.models.content import Content, Part


def belongs_to_branch(branch: str | None, event: Event) -> bool:
    """An event is visible to ``branch`` if its branch is an ancestor-or-self path."""
    if not branch or not event.branch:
        return True
    return branch == event.branch or branch.startswith(event.branch + ".")


def is_auth_event(event: Event) -> bool:
    if event.content is None:
        return False
    for part in event.content.parts:
        if part.function_call and part.function_call.name == REQUEST_CREDENTIAL:
            return True
        if part.function_response and part.function_response.name == REQUEST_CREDENTIAL:
            return True
    return False


def _has_meaningful_content(event: Event) -> bool:
    if event.content is None or not event.content.parts:
        return False
    return any(
        p.text or p.function_call or p.function_response or p.inline_data
        for p in event.content.parts
    )


def _is_other_agent_reply(agent_name: str, event: Event) -> bool:
    return bool(agent_name) and event.author not in (agent_name, "user")


def convert_foreign_event(event: Event) -> Event:
    """Rewrite another agent's event as context supplied by the user."""
    parts = [Part(text="For context:")]
    for part in event.content.parts if event.content is not None else ():
        if part.text:
            parts.append(Part(text=f"[{event.author}] said: {part.text}"))
        elif part.function_call:
            args = json.dumps(part.function_call.args, default=str)
            parts.append(
                Part(
                    text=f"[{event.author}] called tool `{part.function_call.name}` "
                    f"with parameters: {args}"
                )
            )
        elif part.function_response:
            result = json.dumps(part.function_response.response, default=str)
            parts.append(
                Part(
                    text=f"[{event.author}] `{part.function_response.name}` "
                    f"tool returned result: {result}"
                )
            )
        else:
            parts.append(part)
    return Event(
        author="user",
        timestamp=event.timestamp,
        branch=event.branch,
        invocation_id=event.invocation_id,
        content=Content(role="user", parts=parts),
    )


def merge_function_response_events(events: Sequence[Event]) -> Event:
    """Merge response events so each call id appears once, later responses winning."""
    merged = events[0].model_copy(deep=True)
    if merged.content is None:
        merged.content = Content(role="user")
    parts = merged.content.parts
    index_by_id = {
        p.function_response.id: i
        for i, p in enumerate(parts)
        if p.function_response and p.function_response.id
    }
    for event in events[1:]:
        if event.content is None:
            continue
        for part in event.content.parts:
            response_id = part.function_response.id if part.function_response else None
            if response_id and response_id in index_by_id:
                parts[index_by_id[response_id]] = part.model_copy(deep=True)
            else:
                parts.append(part.model_copy(deep=True))
                if response_id:
                    index_by_id[response_id] = len(parts) - 1
    return merged


def rearrange_for_latest_function_response(events: list[Event]) -> list[Event]:
    """Collapse history when the newest event answers an older call.

    If the last event is a function response whose call is not the
    immediately preceding event, everything between the call and the
    response is dropped and the relevant responses are merged after the
    call.
    """
    if not events:
        return events
    responses = events[-1].get_function_responses()
    if not responses:
        return events

    response_ids = {r.id for r in responses if r.id}
    if len(events) >= 2:
        if any(c.id in response_ids for c in events[-2].get_function_calls()):
            return events

    call_index = -1
    for idx in range(len(events) - 2, -1, -1):
        calls = events[idx].get_function_calls()
        if any(c.id in response_ids for c in calls):
            call_index = idx
            response_ids.update(c.id for c in calls if c.id)
            break
    if call_index == -1:
        return events

    response_events = [
        event
        for event in events[call_index + 1 : -1]
        if any(r.id in response_ids for r in event.get_function_responses())
    ]
    response_events.append(events[-1])
    return events[: call_index + 1] + [merge_function_response_events(response_events)]


def rearrange_async_function_responses(events: list[Event]) -> list[Event]:
    """Place every function response directly after its call.

    Responses that arrived in later invocations (long-running tools) are
    moved up; several responses for one call event are merged.
    """
    call_ids = {c.id for e in events for c in e.get_function_calls() if c.id}
    response_index: dict[str, int] = {}
    for i, event in enumerate(events):
        for response in event.get_function_responses():
            if response.id:
                response_index[response.id] = i

    result: list[Event] = []
    for event in events:
        responses = event.get_function_responses()
        if responses:
            # Responses whose call is not in view (compacted, or before the
            # current turn) stay where they are.
            if not any(r.id in call_ids for r in responses):
                result.append(event)
            continue
        calls = event.get_function_calls()
        result.append(event)
        if not calls:
            continue
        indices = sorted({response_index[c.id] for c in calls if c.id in response_index})
        if len(indices) == 1:
            result.append(events[indices[0]])
        elif indices:
            result.append(merge_function_response_events([events[i] for i in indices]))
    return result


def build_contents(
    events: Sequence[Event],
    agent_name: str,
    branch: str | None = None,
    *,
    current_turn_only: bool = False,
) -> list[Content]:
    """Model contents for ``agent_name`` from a raw event log."""
    visible = filter_rewound_events(events)
    if current_turn_only:
        visible = _current_turn(visible, agent_name)
    visible = apply_compaction(visible, agent_name)

    filtered: list[Event] = []
    for event in visible:
        if not _has_meaningful_content(event):
            continue
        if not belongs_to_branch(branch, event):
            continue
        if is_auth_event(event):
            continue
        filtered.append(
            convert_foreign_event(event) if _is_other_agent_reply(agent_name, event) else event
        )

    arranged = rearrange_for_latest_function_response(filtered)
    arranged = rearrange_async_function_responses(arranged)

    contents: list[Content] = []
    for event in arranged:
        if event.content is None:
            continue
        content = event.content.model_copy(deep=True)
        remove_client_call_ids(content)
        contents.append(content)
    return contents


def _current_turn(events: list[Event], agent_name: str) -> list[Event]:
    for i in range(len(events) - 1, -1, -1):
        event = events[i]
        if is_marker_event(event):
            continue
        if event.author == "user" or _is_other_agent_reply(agent_name, event):
            return events[i:]
    return []
