"""strand state -- show a session's merged state."""

from __future__ import annotations

import click

from strand.cli.formatting import format_error, format_state


@click.command()
@click.argument("app_name")
@click.argument("user_id")
@click.argument("session_id")
@click.pass_context
def state(ctx: click.Context, app_name: str, user_id: str, session_id: str) -> None:
    """Show the state of SESSION_ID, including app: and user: keys."""
    from strand.cli import _service_session

    with _service_session(ctx) as (service, console):
        session = service.get_session(app_name=app_name, user_id=user_id, session_id=session_id)
        if session is None:
            format_error(f"Session not found: {session_id}", console)
            raise SystemExit(1)
        format_state(session.state, console)
