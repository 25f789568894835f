"""strand delete -- delete a session."""

from __future__ import annotations

import click


@click.command()
@click.argument("app_name")
@click.argument("user_id")
@click.argument("session_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def delete(ctx: click.Context, app_name: str, user_id: str, session_id: str, yes: bool) -> None:
    """Delete SESSION_ID and all of its events."""
    from strand.cli import _service_session

    if not yes:
        click.confirm(f"Delete session {session_id}?", abort=True)

    with _service_session(ctx) as (service, console):
        service.delete_session(app_name=app_name, user_id=user_id, session_id=session_id)
        console.print(f"Deleted session [yellow]{session_id}[/yellow]")
