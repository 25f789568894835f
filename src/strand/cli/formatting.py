"""Rich formatting helpers for the Strand CLI.

Rich auto-detects TTY and degrades gracefully when piped (no ANSI codes).
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from strand.events.event import Event
    from strand.sessions.session import Session


def get_console() -> Console:
    """Create a Rich Console that auto-detects TTY for graceful pipe degradation."""
    return Console(stderr=False)


def _time(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def _truncate(text: str, width: int = 80) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 3] + "..."


def describe_event(event: Event) -> str:
    """One-line summary of an event's payload."""
    actions = event.actions
    if actions.rewind_before_invocation_id:
        return f"rewind before {actions.rewind_before_invocation_id}"
    if actions.compaction is not None:
        return f"compaction: {_truncate(actions.compaction.compacted_content.text)}"
    pieces: list[str] = []
    for call in event.get_function_calls():
        pieces.append(f"call {call.name}({json.dumps(call.args, default=str)})")
    for response in event.get_function_responses():
        pieces.append(f"{response.name} -> {json.dumps(response.response, default=str)}")
    if event.content is not None and event.content.text:
        pieces.append(event.content.text)
    if event.error_code:
        pieces.append(f"error {event.error_code}: {event.error_message or ''}")
    if actions.transfer_to_agent:
        pieces.append(f"transfer to {actions.transfer_to_agent}")
    return _truncate("; ".join(pieces))


def format_sessions(sessions: list[Session], console: Console) -> None:
    """Display session summaries."""
    if not sessions:
        console.print("[dim]No sessions.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Session", style="yellow")
    table.add_column("Updated", style="dim")

    for session in sessions:
        table.add_row(escape(session.id), _time(session.last_update_time))

    console.print(table)


def format_events(events: list[Event], console: Console) -> None:
    """Display events in append order."""
    if not events:
        console.print("[dim]No events.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Id", style="yellow", width=8)
    table.add_column("Time", style="dim")
    table.add_column("Invocation", style="dim")
    table.add_column("Author", style="cyan")
    table.add_column("Branch", style="magenta")
    table.add_column("Content")

    for event in events:
        table.add_row(
            event.id,
            _time(event.timestamp),
            event.invocation_id,
            escape(event.author),
            escape(event.branch or ""),
            escape(describe_event(event)),
        )

    console.print(table)


def format_state(state: dict[str, Any], console: Console) -> None:
    """Display merged session state, one key per row."""
    if not state:
        console.print("[dim]State is empty.[/dim]")
        return

    table = Table(show_header=True, header_style="bold", box=None, pad_edge=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")

    for key in sorted(state):
        table.add_row(escape(key), escape(json.dumps(state[key], default=str)))

    console.print(table)


def format_error(message: str, console: Console) -> None:
    """Display an error message."""
    console.print(f"[red]Error:[/red] {message}", highlight=False)
