"""strand rewind -- roll a session back to before an invocation."""

from __future__ import annotations

import click

from strand.cli.formatting import format_error


@click.command()
@click.argument("app_name")
@click.argument("user_id")
@click.argument("session_id")
@click.argument("invocation_id")
@click.pass_context
def rewind(
    ctx: click.Context, app_name: str, user_id: str, session_id: str, invocation_id: str
) -> None:
    """Hide INVOCATION_ID and everything after it, restoring the state before it.

    Artifacts are not restored from the CLI; use Runner.rewind with an
    artifact service for that.
    """
    from strand.cli import _service_session
    from strand.runner import rewind_session

    with _service_session(ctx) as (service, console):
        session = service.get_session(app_name=app_name, user_id=user_id, session_id=session_id)
        if session is None:
            format_error(f"Session not found: {session_id}", console)
            raise SystemExit(1)
        event = rewind_session(service, session, invocation_id)
        console.print(
            f"Rewound [yellow]{session_id}[/yellow] before [cyan]{invocation_id}[/cyan] "
            f"({len(event.actions.state_delta)} state key(s) restored)"
        )
