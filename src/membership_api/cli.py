"""`membership-api` command line: serve, migrate and seed."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
import uvicorn

from membership_api.common.logging import setup_logging
from membership_api.db import DatabaseConfig, db
from membership_api.db.migrations import upgrade_database
from membership_api.lifecycles import seed_system_sub_roles
from membership_api.settings import get_settings

DEFAULT_BIND_HOST = "0.0.0.0"
DEFAULT_BIND_PORT = 8000

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Membership API CLI (start, migrate, sync-sub-roles).",
)


@app.command()
def start(
    host: Annotated[str, typer.Option(help="Interface to bind.")] = DEFAULT_BIND_HOST,
    port: Annotated[int, typer.Option(help="Port to bind.")] = DEFAULT_BIND_PORT,
    reload: Annotated[bool, typer.Option(help="Reload on source changes.")] = False,
) -> None:
    """Serve the API with uvicorn."""
    settings = get_settings()
    typer.echo(f"Starting {settings.app_name} on http://{host}:{port}")
    uvicorn.run(
        "membership_api.main:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.logging_level.lower(),
    )


@app.command()
def migrate() -> None:
    """Apply Alembic migrations up to head."""
    settings = get_settings()
    setup_logging(settings)
    upgrade_database(settings)
    typer.echo("Database is at head.")


@app.command("sync-sub-roles")
def sync_sub_roles() -> None:
    """Create or repair the built-in system sub-roles."""
    settings = get_settings()
    setup_logging(settings)

    async def _run() -> None:
        db.init(DatabaseConfig.from_settings(settings))
        try:
            await seed_system_sub_roles()
        finally:
            await db.dispose()

    asyncio.run(_run())
    typer.echo("System sub-roles are in sync.")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
