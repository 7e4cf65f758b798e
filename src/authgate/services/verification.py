"""Single-use verification codes for email confirmation and password reset."""

import hmac
import logging
import secrets
import string
from dataclasses import dataclass
from datetime import timedelta

from authgate.config import Settings
from authgate.errors import (
    VerificationCodeMismatch,
    VerificationExpired,
    VerificationNotFound,
    VerificationTypeMismatch,
)
from authgate.models import VerificationData, VerificationType, ensure_utc
from authgate.services.store import CredentialStore
from authgate.services.tokens import Clock, system_clock

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_letters + string.digits


def generate_code(length: int) -> str:
    """Generate a uniformly random alphanumeric code from the system CSPRNG."""
    if length < 1:
        raise ValueError(f"code length must be positive, got {length}")
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class VerificationConfig:
    """Code length and per-type lifetimes."""

    code_length: int = 8
    email_verify_ttl: timedelta = timedelta(days=1)
    pass_reset_ttl: timedelta = timedelta(minutes=15)

    @classmethod
    def from_settings(cls, settings: Settings) -> "VerificationConfig":
        return cls(
            code_length=settings.verification_code_length,
            email_verify_ttl=timedelta(minutes=settings.mail_verification_code_expiration_minutes),
            pass_reset_ttl=timedelta(minutes=settings.pass_reset_code_expiration_minutes),
        )

    def ttl_for(self, verification_type: VerificationType) -> timedelta:
        if verification_type == VerificationType.PASS_RESET:
            return self.pass_reset_ttl
        return self.email_verify_ttl


class VerificationCodeManager:
    """Issues, stores and redeems verification codes.

    Each email has at most one outstanding code; issuing a new one replaces
    the previous one regardless of its type. Expiry is checked lazily when a
    code is redeemed.
    """

    def __init__(
        self,
        config: VerificationConfig,
        store: CredentialStore,
        clock: Clock = system_clock,
    ) -> None:
        self.config = config
        self.store = store
        self.clock = clock

    def generate_code(self, length: int | None = None) -> str:
        return generate_code(length or self.config.code_length)

    async def store_verification_data(self, data: VerificationData) -> None:
        """Persist ``data``, replacing any outstanding code for the same email."""
        await self.store.upsert_verification_data(data)
        logger.debug(f"Stored {data.type.value} code for {data.email}")

    async def issue(self, email: str, verification_type: VerificationType) -> VerificationData:
        """Generate and store a fresh code of the given type for ``email``."""
        data = VerificationData(
            email=email,
            code=self.generate_code(),
            type=verification_type,
            expires_at=self.clock() + self.config.ttl_for(verification_type),
        )
        await self.store_verification_data(data)
        return data

    async def redeem_verification_data(
        self,
        email: str,
        code: str,
        expected_type: VerificationType,
    ) -> None:
        """Consume the outstanding code for ``email``.

        Redeeming an EMAIL_VERIFY code also marks the user verified, in the
        same transaction that deletes the code.

        Raises:
            VerificationNotFound: no outstanding code, or it was consumed concurrently
            VerificationCodeMismatch: the submitted code differs
            VerificationExpired: the code matched but its lifetime has elapsed
            VerificationTypeMismatch: the code was issued for another purpose
        """
        stored = await self.store.get_verification_data(email)
        if stored is None:
            raise VerificationNotFound(f"no outstanding code for {email}")

        if not hmac.compare_digest(stored.code.encode(), code.encode()):
            raise VerificationCodeMismatch(f"code mismatch for {email}")

        if self.clock() >= ensure_utc(stored.expires_at):
            await self.store.delete_verification_data(email, code=stored.code)
            raise VerificationExpired(f"code for {email} expired at {stored.expires_at}")

        if stored.type != expected_type:
            raise VerificationTypeMismatch(
                f"code for {email} is {stored.type.value}, expected {expected_type.value}"
            )

        # Compare-and-delete: only one concurrent redemption can remove the row
        if expected_type == VerificationType.EMAIL_VERIFY:
            consumed = await self.store.redeem_email_verification(email, stored.code)
        else:
            consumed = await self.store.delete_verification_data(email, code=stored.code)
        if not consumed:
            raise VerificationNotFound(f"code for {email} was already redeemed")

        logger.info(f"Redeemed {expected_type.value} code for {email}")
