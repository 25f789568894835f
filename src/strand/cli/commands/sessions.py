"""strand sessions -- list a user's sessions."""

from __future__ import annotations

import click

from strand.cli.formatting import format_sessions


@click.command()
@click.argument("app_name")
@click.argument("user_id")
@click.pass_context
def sessions(ctx: click.Context, app_name: str, user_id: str) -> None:
    """List the sessions USER_ID has in APP_NAME."""
    from strand.cli import _service_session

    with _service_session(ctx) as (service, console):
        response = service.list_sessions(app_name=app_name, user_id=user_id)
        format_sessions(response.sessions, console)
