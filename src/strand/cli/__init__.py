"""Strand CLI -- inspect and repair database-backed sessions.

This module is never imported from strand/__init__.py.
It is only loaded via the ``strand`` entry point defined in pyproject.toml.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click

from strand.cli.formatting import format_error, get_console

if TYPE_CHECKING:
    from collections.abc import Iterator

    from rich.console import Console

    from strand.sessions.database import DatabaseSessionService


@click.group()
@click.option(
    "--db",
    default=".strand.db",
    envvar="STRAND_DB",
    help="Path to the session database.",
)
@click.pass_context
def cli(ctx: click.Context, db: str) -> None:
    """Strand: inspect agent sessions stored in a database."""
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db


def _get_service(ctx: click.Context) -> DatabaseSessionService:
    """Open the session database named by --db.

    Refuses to create a new file; the CLI only inspects existing stores.
    """
    from strand.sessions.database import DatabaseSessionService

    db_path = ctx.obj["db_path"]
    if db_path != ":memory:" and not os.path.exists(db_path):
        format_error(f"Database not found: {db_path}", get_console())
        raise SystemExit(1)
    return DatabaseSessionService(db_path)


@contextmanager
def _service_session(ctx: click.Context) -> Iterator[tuple[DatabaseSessionService, Console]]:
    """Open the service, yield (service, console), and close it on exit.

    Exceptions are printed as CLI errors and turned into exit code 1.
    """
    console = get_console()
    try:
        service = _get_service(ctx)
        try:
            yield service, console
        finally:
            service.close()
    except SystemExit:
        raise
    except Exception as e:
        format_error(str(e), console)
        raise SystemExit(1) from None


# Register subcommands after cli group is defined
from strand.cli.commands.delete import delete  # noqa: E402
from strand.cli.commands.events import events  # noqa: E402
from strand.cli.commands.rewind import rewind  # noqa: E402
from strand.cli.commands.sessions import sessions  # noqa: E402
from strand.cli.commands.state import state  # noqa: E402

cli.add_command(sessions)
cli.add_command(events)
cli.add_command(state)
cli.add_command(delete)
cli.add_command(rewind)
