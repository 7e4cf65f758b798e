"""Access and refresh token signing and validation.

Access tokens are short-lived and validated without touching storage.
Refresh tokens are long-lived and carry a fingerprint derived from the
user's ``token_hash``; rotating that hash revokes every refresh token issued
before the rotation. Password reset grants use the same binding, so the
password change they authorize also invalidates them.
"""

import hashlib
import hmac
import logging
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JOSEError, JWTClaimsError, JWTError

from authgate.config import Settings
from authgate.errors import (
    SignatureInvalid,
    SigningError,
    TokenExpired,
    TokenMalformed,
    TokenRevoked,
)
from authgate.models import User
from authgate.services.store import CredentialStore

logger = logging.getLogger(__name__)

TokenType = Literal["access", "refresh", "pass_reset"]

TOKEN_HASH_LENGTH = 15
TOKEN_HASH_ALPHABET = string.ascii_letters + string.digits

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(UTC)


def new_token_hash() -> str:
    """Generate a fresh refresh token fingerprint seed."""
    return "".join(secrets.choice(TOKEN_HASH_ALPHABET) for _ in range(TOKEN_HASH_LENGTH))


def fingerprint(user_id: str, token_hash: str) -> str:
    """Fingerprint embedded in refresh tokens: HMAC-SHA256 of the user ID keyed by token_hash."""
    return hmac.new(token_hash.encode(), user_id.encode(), hashlib.sha256).hexdigest()


@dataclass(frozen=True)
class TokenConfig:
    """Immutable signing configuration for TokenService."""

    access_secret: str
    access_ttl: timedelta
    refresh_secret: str
    refresh_ttl: timedelta
    reset_ttl: timedelta = timedelta(minutes=15)
    algorithm: str = "HS256"
    leeway: timedelta = timedelta(0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenConfig":
        return cls(
            access_secret=settings.access_token_secret,
            access_ttl=timedelta(minutes=settings.access_token_expiration_minutes),
            refresh_secret=settings.refresh_token_secret,
            refresh_ttl=timedelta(days=settings.refresh_token_expiration_days),
            reset_ttl=timedelta(minutes=settings.pass_reset_code_expiration_minutes),
            algorithm=settings.jwt_algorithm,
            leeway=timedelta(seconds=settings.jwt_leeway_seconds),
        )


class TokenService:
    """Stateless signer/verifier for access and refresh tokens."""

    def __init__(self, config: TokenConfig, clock: Clock = system_clock) -> None:
        if not config.access_secret or not config.refresh_secret:
            raise SigningError("access and refresh token secrets must be configured")
        if config.access_secret == config.refresh_secret:
            raise SigningError("access and refresh token secrets must differ")
        self.config = config
        self.clock = clock

    def _secret(self, token_type: TokenType) -> str:
        if token_type == "refresh":
            return self.config.refresh_secret
        return self.config.access_secret

    def _ttl(self, token_type: TokenType) -> timedelta:
        return {
            "access": self.config.access_ttl,
            "refresh": self.config.refresh_ttl,
            "pass_reset": self.config.reset_ttl,
        }[token_type]

    def _encode(self, token_type: TokenType, claims: dict[str, Any]) -> str:
        now = self.clock()
        payload = {
            **claims,
            "type": token_type,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl(token_type)).timestamp()),
        }
        try:
            return jwt.encode(payload, self._secret(token_type), algorithm=self.config.algorithm)
        except JWTError as e:
            raise SigningError(f"unable to sign {token_type} token: {e}") from e

    def _decode(self, token: str, token_type: TokenType) -> dict[str, Any]:
        """Decode and check a token, classifying each failure.

        The structure is parsed first so that garbage input is reported as
        malformed; the signature is checked before expiry so that a forged
        token is never reported as merely expired.
        """
        try:
            jwt.get_unverified_header(token)
            jwt.get_unverified_claims(token)
        except JOSEError as e:
            raise TokenMalformed(f"{token_type} token could not be parsed: {e}") from e

        try:
            payload = jwt.decode(
                token,
                self._secret(token_type),
                algorithms=[self.config.algorithm],
                # Expiry is checked below against the injected clock
                options={"verify_exp": False},
            )
        except ExpiredSignatureError as e:
            raise TokenExpired(f"{token_type} token expired") from e
        except JWTClaimsError as e:
            raise TokenMalformed(f"{token_type} token has invalid claims: {e}") from e
        except JWTError as e:
            raise SignatureInvalid(f"{token_type} token signature rejected: {e}") from e

        if payload.get("type") != token_type:
            raise TokenMalformed(f"expected {token_type} token, got {payload.get('type')!r}")
        if not payload.get("sub"):
            raise TokenMalformed(f"{token_type} token missing subject")

        exp = payload.get("exp")
        if not isinstance(exp, int | float):
            raise TokenMalformed(f"{token_type} token missing expiry")
        expires_at = datetime.fromtimestamp(exp, UTC)
        if self.clock() >= expires_at + self.config.leeway:
            raise TokenExpired(f"{token_type} token expired at {expires_at.isoformat()}")

        return payload

    async def _validate_bound(
        self, token: str, token_type: TokenType, store: CredentialStore
    ) -> User:
        payload = self._decode(token, token_type)
        user_id = str(payload["sub"])

        claimed = payload.get("key")
        if not isinstance(claimed, str) or not claimed:
            raise TokenMalformed(f"{token_type} token missing fingerprint")

        user = await store.get_user_by_id(user_id)
        if user is None:
            raise TokenRevoked(f"{token_type} token subject {user_id} no longer exists")

        if not hmac.compare_digest(claimed, fingerprint(user.id, user.token_hash)):
            raise TokenRevoked(f"{token_type} token fingerprint mismatch for user {user_id}")

        return user

    def generate_access_token(self, user: User) -> str:
        """Create a short-lived access token for a user."""
        return self._encode("access", {"sub": user.id})

    def generate_refresh_token(self, user: User) -> str:
        """Create a refresh token bound to the user's current token_hash."""
        return self._encode(
            "refresh",
            {"sub": user.id, "key": fingerprint(user.id, user.token_hash)},
        )

    def generate_reset_grant(self, user: User) -> str:
        """Create a grant allowing one password change, bound like a refresh token."""
        return self._encode(
            "pass_reset",
            {"sub": user.id, "key": fingerprint(user.id, user.token_hash)},
        )

    def validate_access_token(self, token: str) -> str:
        """Validate an access token and return the user ID it was issued to."""
        payload = self._decode(token, "access")
        return str(payload["sub"])

    async def validate_refresh_token(self, token: str, store: CredentialStore) -> User:
        """Validate a refresh token and return its user.

        Fails closed with TokenRevoked when the user is gone or the embedded
        fingerprint no longer matches the user's current token_hash.
        """
        return await self._validate_bound(token, "refresh", store)

    async def validate_reset_grant(self, token: str, store: CredentialStore) -> User:
        return await self._validate_bound(token, "pass_reset", store)
