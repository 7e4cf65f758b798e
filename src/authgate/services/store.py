"""Credential store: persistence of users and verification codes."""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Protocol

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from authgate.errors import PersistenceError, UserAlreadyExists, UserNotFound
from authgate.models import User, VerificationData

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


class CredentialStore(Protocol):
    """Operations the token and verification services need from storage."""

    async def get_user_by_id(self, user_id: str) -> User | None: ...

    async def get_user_by_email(self, email: str) -> User | None: ...

    async def create_user(self, user: User) -> User: ...

    async def update_user_verification_status(self, user_id: str) -> None: ...

    async def update_user_token_hash(self, user_id: str, token_hash: str) -> None: ...

    async def update_user_password(
        self, user_id: str, password_hash: str, token_hash: str
    ) -> None: ...

    async def update_username(self, user_id: str, username: str) -> None: ...

    async def upsert_verification_data(self, data: VerificationData) -> None: ...

    async def get_verification_data(self, email: str) -> VerificationData | None: ...

    async def delete_verification_data(self, email: str, code: str | None = None) -> bool: ...

    async def redeem_email_verification(self, email: str, code: str) -> bool: ...


class SQLCredentialStore:
    """CredentialStore backed by an async SQLAlchemy session.

    Every operation runs under a deadline. Timeouts and driver errors are
    rolled back and re-raised as PersistenceError so callers never see raw
    database messages.
    """

    def __init__(self, session: AsyncSession, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.session = session
        self.timeout = timeout

    @asynccontextmanager
    async def _operation(self, name: str) -> AsyncGenerator[None, None]:
        try:
            async with asyncio.timeout(self.timeout):
                yield
        except TimeoutError as e:
            await self.session.rollback()
            raise PersistenceError(f"{name} timed out after {self.timeout}s") from e
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise PersistenceError(f"{name} failed: {e!r}") from e

    async def _require_user(self, user_id: str) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise UserNotFound(f"user {user_id} not found")
        return user

    async def get_user_by_id(self, user_id: str) -> User | None:
        async with self._operation("get_user_by_id"):
            return await self.session.get(User, user_id, populate_existing=True)

    async def get_user_by_email(self, email: str) -> User | None:
        async with self._operation("get_user_by_email"):
            stmt = select(User).where(User.email == email).execution_options(populate_existing=True)
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

    async def create_user(self, user: User) -> User:
        async with self._operation("create_user"):
            self.session.add(user)
            try:
                await self.session.commit()
            except IntegrityError as e:
                await self.session.rollback()
                raise UserAlreadyExists(f"email {user.email} already registered") from e
            logger.info(f"Created user {user.id}")
            return user

    async def update_user_verification_status(self, user_id: str) -> None:
        async with self._operation("update_user_verification_status"):
            user = await self._require_user(user_id)
            user.is_verified = True
            await self.session.commit()

    async def update_user_token_hash(self, user_id: str, token_hash: str) -> None:
        async with self._operation("update_user_token_hash"):
            user = await self._require_user(user_id)
            user.token_hash = token_hash
            await self.session.commit()

    async def update_user_password(self, user_id: str, password_hash: str, token_hash: str) -> None:
        async with self._operation("update_user_password"):
            user = await self._require_user(user_id)
            user.password_hash = password_hash
            user.token_hash = token_hash
            await self.session.commit()

    async def update_username(self, user_id: str, username: str) -> None:
        async with self._operation("update_username"):
            user = await self._require_user(user_id)
            user.username = username
            await self.session.commit()

    async def upsert_verification_data(self, data: VerificationData) -> None:
        async with self._operation("upsert_verification_data"):
            await self.session.merge(data)
            await self.session.commit()

    async def get_verification_data(self, email: str) -> VerificationData | None:
        async with self._operation("get_verification_data"):
            return await self.session.get(VerificationData, email, populate_existing=True)

    async def delete_verification_data(self, email: str, code: str | None = None) -> bool:
        """Delete the record for ``email``; with ``code``, only if it still matches.

        Returns True when a row was removed. A False result on the
        compare-and-delete means a concurrent redemption already consumed it.
        """
        async with self._operation("delete_verification_data"):
            stmt = delete(VerificationData).where(VerificationData.email == email)  # type: ignore[arg-type]
            if code is not None:
                stmt = stmt.where(VerificationData.code == code)  # type: ignore[arg-type]
            result = await self.session.execute(stmt)
            await self.session.commit()
            return result.rowcount > 0  # type: ignore[attr-defined]

    async def redeem_email_verification(self, email: str, code: str) -> bool:
        """Consume an email verification code and mark its user verified.

        Both writes share one commit. If either fails, the code survives and
        the user stays unverified, so the same code can be retried.
        """
        async with self._operation("redeem_email_verification"):
            stmt = delete(VerificationData).where(
                VerificationData.email == email,  # type: ignore[arg-type]
                VerificationData.code == code,  # type: ignore[arg-type]
            )
            result = await self.session.execute(stmt)
            if result.rowcount == 0:  # type: ignore[attr-defined]
                await self.session.rollback()
                return False
            await self.session.execute(
                update(User).where(User.email == email).values(is_verified=True)  # type: ignore[arg-type]
            )
            await self.session.commit()
            return True
