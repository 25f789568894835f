"""strand events -- show a session's event log."""

from __future__ import annotations

import click

from strand.cli.formatting import format_error, format_events


@click.command()
@click.argument("app_name")
@click.argument("user_id")
@click.argument("session_id")
@click.option("-n", "--limit", default=None, type=int, help="Show only the most recent events.")
@click.option("--all", "show_all", is_flag=True, help="Include events hidden by rewinds.")
@click.pass_context
def events(
    ctx: click.Context,
    app_name: str,
    user_id: str,
    session_id: str,
    limit: int | None,
    show_all: bool,
) -> None:
    """Show the events of SESSION_ID, oldest first."""
    from strand.cli import _service_session
    from strand.events.history import filter_rewound_events
    from strand.sessions.base import GetSessionConfig

    with _service_session(ctx) as (service, console):
        config = GetSessionConfig(num_recent_events=limit) if limit is not None else None
        session = service.get_session(
            app_name=app_name, user_id=user_id, session_id=session_id, config=config
        )
        if session is None:
            format_error(f"Session not found: {session_id}", console)
            raise SystemExit(1)
        shown = session.events if show_all else filter_rewound_events(session.events)
        format_events(shown, console)
