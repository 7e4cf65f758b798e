"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"
os.environ["PASSWORD_HASH_ROUNDS"] = "4"
os.environ["EMAIL_BACKEND"] = "console"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from authgate.database import enable_sqlite_foreign_keys, get_session
from authgate.main import app
from authgate.models import User
from authgate.services.accounts import AccountService
from authgate.services.email import EmailBackend, EmailService, email_service
from authgate.services.passwords import hash_password
from authgate.services.rate_limit import get_rate_limiter
from authgate.services.store import SQLCredentialStore
from authgate.services.tokens import TokenConfig, TokenService, new_token_hash
from authgate.services.verification import VerificationCodeManager, VerificationConfig

TEST_PASSWORD = "correct-horse-1"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class SentEmail:
    to: str
    subject: str
    html: str
    text: str


@dataclass
class RecordingEmailBackend(EmailBackend):
    """Email backend that keeps messages in memory."""

    outbox: list[SentEmail] = field(default_factory=list)

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        self.outbox.append(SentEmail(to=to, subject=subject, html=html, text=text))

    def last_code(self, to: str) -> str:
        """Pull the code out of the most recent message sent to ``to``."""
        message = next(m for m in reversed(self.outbox) if m.to == to)
        return message.text.split("\n\n")[3].strip()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    get_rate_limiter().reset()
    yield
    get_rate_limiter().reset()


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'authgate.db'}",
        poolclass=NullPool,
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def store(session: AsyncSession) -> SQLCredentialStore:
    return SQLCredentialStore(session)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(
        access_secret="test-access-secret-0123456789abcdef",
        access_ttl=timedelta(minutes=15),
        refresh_secret="test-refresh-secret-0123456789abcdef",
        refresh_ttl=timedelta(days=7),
        reset_ttl=timedelta(minutes=15),
    )


@pytest.fixture
def tokens(token_config: TokenConfig, clock: FrozenClock) -> TokenService:
    return TokenService(token_config, clock=clock)


@pytest.fixture
def verification_config() -> VerificationConfig:
    return VerificationConfig(
        code_length=8,
        email_verify_ttl=timedelta(minutes=10),
        pass_reset_ttl=timedelta(minutes=15),
    )


@pytest.fixture
def verifications(
    verification_config: VerificationConfig,
    store: SQLCredentialStore,
    clock: FrozenClock,
) -> VerificationCodeManager:
    return VerificationCodeManager(verification_config, store, clock=clock)


@pytest.fixture
def email_backend() -> RecordingEmailBackend:
    return RecordingEmailBackend()


@pytest.fixture
def accounts(
    store: SQLCredentialStore,
    tokens: TokenService,
    verifications: VerificationCodeManager,
    email_backend: RecordingEmailBackend,
) -> AccountService:
    return AccountService(
        store=store,
        tokens=tokens,
        verifications=verifications,
        mailer=EmailService(email_backend),
    )


@pytest.fixture
async def user(store: SQLCredentialStore) -> User:
    """A verified user with TEST_PASSWORD."""
    return await store.create_user(
        User(
            email="test@example.com",
            username="tester",
            password_hash=hash_password(TEST_PASSWORD),
            token_hash=new_token_hash(),
            is_verified=True,
        )
    )


@pytest.fixture
async def unverified_user(store: SQLCredentialStore) -> User:
    return await store.create_user(
        User(
            email="new@example.com",
            password_hash=hash_password(TEST_PASSWORD),
            token_hash=new_token_hash(),
        )
    )


@pytest.fixture
async def client(
    session_factory,
    email_backend: RecordingEmailBackend,
    monkeypatch: pytest.MonkeyPatch,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session on the test database."""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    monkeypatch.setattr(email_service, "_backend", email_backend)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def login(client: AsyncClient, email: str, password: str = TEST_PASSWORD) -> dict[str, str]:
    """Log in and return the token data."""
    response = await client.post("/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()["data"]


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
