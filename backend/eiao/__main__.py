"""Command line for Everything Is An Ordeal.

Usage:
    python -m eiao serve                 # Run the web server (HOST/PORT from settings)
    python -m eiao serve --reload        # Development server with auto-reload
    python -m eiao init-db               # Create missing tables
    python -m eiao reconcile --dry-run   # List images no ordeal references
    python -m eiao reconcile             # ...and delete them
"""

import asyncio
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from eiao.config import settings

app = typer.Typer(
    name="eiao",
    help="Everything Is An Ordeal: turn any URL into an ordeal.",
    no_args_is_help=True,
)
console = Console(stderr=True)


@app.command("serve")
def cmd_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default: HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default: PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
) -> None:
    """Run the web server."""
    uvicorn.run(
        "eiao.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command("init-db")
def cmd_init_db() -> None:
    """Create the ordeals table if it does not exist."""
    from eiao.database import Database

    async def _run() -> None:
        database = Database(settings.database_url, settings.engine_options())
        try:
            await database.ensure_schema(
                max_attempts=settings.db_retry_max_attempts,
                min_wait=settings.db_retry_min_wait,
                max_wait=settings.db_retry_max_wait,
            )
        finally:
            await database.dispose()

    asyncio.run(_run())
    console.print("[green]Schema ready.[/green]")


@app.command("reconcile")
def cmd_reconcile(
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="List orphans without deleting"),
) -> None:
    """Delete processed images that no ordeal references.

    Run it while no ordeals are being created: an image written by a create
    request whose record is not yet inserted looks like an orphan.
    """
    from eiao.main import build_image_service, build_store, setup_logging
    from eiao.services.hit_counter import HitCounter
    from eiao.services.ordeal_service import OrdealService

    setup_logging(settings.log_level)

    async def _run():
        store = build_store(settings)
        service = OrdealService(store, build_image_service(settings), HitCounter(store))
        try:
            return await service.reconcile_images(dry_run=dry_run)
        finally:
            await store.close()

    orphans = asyncio.run(_run())
    if not orphans:
        console.print("[green]No orphaned images.[/green]")
        return

    title = "Orphaned images (not deleted)" if dry_run else "Deleted orphaned images"
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("File", style="yellow")
    for name in orphans:
        table.add_row(name)
    console.print()
    console.print(table)
    console.print()


if __name__ == "__main__":
    app()
