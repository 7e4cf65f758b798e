"""CLI command tests."""

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel
from typer.testing import CliRunner

from authgate import __version__
from authgate.api.deps import get_token_service
from authgate.cli import app
from authgate.cli import users as users_cli
from authgate.database import enable_sqlite_foreign_keys

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_database(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point the user commands at a throwaway database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}", poolclass=NullPool)
    enable_sqlite_foreign_keys(engine)

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    asyncio.run(create_tables())
    factory = async_sessionmaker(bind=engine, expire_on_commit=False)

    @asynccontextmanager
    async def session_context():
        async with factory() as session:
            yield session

    monkeypatch.setattr(users_cli, "get_session_context", session_context)
    monkeypatch.setattr(users_cli, "close_db", AsyncMock())
    monkeypatch.setattr("authgate.logging.setup_logging", lambda: None)

    yield

    asyncio.run(engine.dispose())


def create_user(email: str = "cli@example.com", *flags: str):
    return runner.invoke(
        app,
        ["users", "create", email, *flags],
        input="cli-password-1\ncli-password-1\n",
    )


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_create_and_issue_access_token():
    assert create_user("cli@example.com", "--verified").exit_code == 0

    result = runner.invoke(app, ["users", "access-token", "cli@example.com"])

    assert result.exit_code == 0, result.output
    token = result.output.strip().splitlines()[-1]
    assert get_token_service().validate_access_token(token)


def test_create_duplicate_fails():
    assert create_user().exit_code == 0
    result = create_user()
    assert result.exit_code == 1


def test_issue_code():
    create_user()

    result = runner.invoke(app, ["users", "issue-code", "cli@example.com", "--reset"])

    assert result.exit_code == 0, result.output
    assert "pass_reset code:" in result.output


def test_verify_and_revoke():
    create_user()

    assert runner.invoke(app, ["users", "verify", "cli@example.com"]).exit_code == 0
    again = runner.invoke(app, ["users", "verify", "cli@example.com"])
    assert "already verified" in again.output
    assert runner.invoke(app, ["users", "revoke-tokens", "cli@example.com"]).exit_code == 0


def test_lookup_normalizes_email():
    create_user("cli@example.com")

    result = runner.invoke(app, ["users", "verify", " CLI@Example.com "])

    assert result.exit_code == 0, result.output
    assert "Verified" in result.output


def test_unknown_user():
    result = runner.invoke(app, ["users", "revoke-tokens", "nobody@example.com"])
    assert result.exit_code == 1
    assert "not found" in result.output
