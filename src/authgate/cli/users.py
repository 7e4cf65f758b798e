"""User management CLI commands."""

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlmodel import select

from authgate.api.deps import get_token_service
from authgate.config import settings
from authgate.database import close_db, get_session_context
from authgate.errors import AuthgateError
from authgate.models import User, VerificationType
from authgate.services.passwords import hash_password
from authgate.services.store import SQLCredentialStore
from authgate.services.tokens import new_token_hash
from authgate.services.verification import VerificationCodeManager, VerificationConfig

console = Console()
app = typer.Typer(help="User management commands")


def _run(coro) -> None:  # type: ignore[no-untyped-def]
    async def _wrapped():
        try:
            await coro
        except AuthgateError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from e
        finally:
            await close_db()

    asyncio.run(_wrapped())


async def _require_user(store: SQLCredentialStore, email: str) -> User:
    user = await store.get_user_by_email(email.strip().lower())
    if user is None:
        console.print(f"[red]Error:[/red] User {email} not found")
        raise typer.Exit(1)
    return user


@app.command("list")
def list_users():
    """List all users."""

    async def _list():
        async with get_session_context() as session:
            result = await session.execute(select(User).order_by(User.email))
            users = result.scalars().all()

            table = Table(title="Users")
            table.add_column("ID", style="cyan")
            table.add_column("Email", style="green")
            table.add_column("Username")
            table.add_column("Verified", style="magenta")
            table.add_column("Created", style="dim")

            for user in users:
                verified = "[green]Yes[/green]" if user.is_verified else "No"
                created = user.created_at.strftime("%Y-%m-%d") if user.created_at else "-"
                table.add_row(user.id, user.email, user.username or "-", verified, created)

            console.print(table)

    _run(_list())


@app.command("create")
def create_user(
    email: str = typer.Argument(..., help="User email"),
    username: str | None = typer.Option(None, "--username", "-u", help="Display name"),
    verified: bool = typer.Option(False, "--verified", help="Skip email verification"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
):
    """Create a user directly, without sending a verification code."""

    async def _create():
        async with get_session_context() as session:
            store = SQLCredentialStore(session, timeout=settings.store_timeout_seconds)
            user = User(
                email=email.strip().lower(),
                username=username,
                password_hash=hash_password(password),
                token_hash=new_token_hash(),
                is_verified=verified,
            )
            await store.create_user(user)
            console.print(f"[green]Created user:[/green] {user.email} ({user.id}, verified={verified})")

    _run(_create())


@app.command("verify")
def verify_user(email: str = typer.Argument(..., help="User email")):
    """Mark a user's email as verified."""

    async def _verify():
        async with get_session_context() as session:
            store = SQLCredentialStore(session, timeout=settings.store_timeout_seconds)
            user = await _require_user(store, email)
            if user.is_verified:
                console.print(f"[yellow]Warning:[/yellow] User {email} is already verified")
                return
            await store.update_user_verification_status(user.id)
            console.print(f"[green]Verified:[/green] {email}")

    _run(_verify())


@app.command("issue-code")
def issue_code(
    email: str = typer.Argument(..., help="User email"),
    reset: bool = typer.Option(False, "--reset", help="Issue a password reset code"),
):
    """Issue a verification code and print it instead of mailing it."""
    verification_type = VerificationType.PASS_RESET if reset else VerificationType.EMAIL_VERIFY

    async def _issue():
        async with get_session_context() as session:
            store = SQLCredentialStore(session, timeout=settings.store_timeout_seconds)
            user = await _require_user(store, email)
            manager = VerificationCodeManager(VerificationConfig.from_settings(settings), store)
            data = await manager.issue(user.email, verification_type)
            console.print(f"[green]{verification_type.value} code:[/green] {data.code}")
            console.print(f"[dim]Expires: {data.expires_at}[/dim]")

    _run(_issue())


@app.command("revoke-tokens")
def revoke_tokens(email: str = typer.Argument(..., help="User email")):
    """Invalidate every refresh token issued to a user."""

    async def _revoke():
        async with get_session_context() as session:
            store = SQLCredentialStore(session, timeout=settings.store_timeout_seconds)
            user = await _require_user(store, email)
            await store.update_user_token_hash(user.id, new_token_hash())
            console.print(f"[green]Revoked refresh tokens for:[/green] {email}")

    _run(_revoke())


@app.command("access-token")
def access_token(email: str = typer.Argument(..., help="User email")):
    """Print a short-lived access token for a user (for debugging)."""

    async def _token():
        async with get_session_context() as session:
            store = SQLCredentialStore(session, timeout=settings.store_timeout_seconds)
            user = await _require_user(store, email)
            typer.echo(get_token_service().generate_access_token(user))

    _run(_token())
