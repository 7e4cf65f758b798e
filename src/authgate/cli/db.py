"""Database management CLI commands."""

import asyncio

import typer
from rich.console import Console
from sqlalchemy import text

from authgate.database import close_db, get_session_context, init_db

console = Console()
app = typer.Typer(help="Database management commands")


@app.command("init")
def init():
    """Create the users and verifications tables if they do not exist."""

    async def _init():
        try:
            await init_db()
        finally:
            await close_db()

    asyncio.run(_init())
    console.print("[green]Tables ready[/green]")


@app.command("check")
def check():
    """Check database connectivity."""

    async def _check() -> bool:
        try:
            async with get_session_context() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            console.print(f"[red]Error:[/red] {e!r}")
            return False
        finally:
            await close_db()

    if not asyncio.run(_check()):
        raise typer.Exit(1)
    console.print("[green]Database connected[/green]")
