"""Account flows built on the token service and verification codes."""

import logging
from dataclasses import dataclass

from authgate.errors import (
    InvalidCredentials,
    PasswordMismatch,
    TokenMalformed,
    UnverifiedUser,
    UserAlreadyExists,
    UserNotFound,
)
from authgate.models import User, VerificationType
from authgate.services.email import EmailService
from authgate.services.passwords import hash_password, verify_password
from authgate.services.store import CredentialStore
from authgate.services.tokens import TokenService, new_token_hash
from authgate.services.verification import VerificationCodeManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"


class AccountService:
    """Signup, login, token issuance and code-driven account changes."""

    def __init__(
        self,
        store: CredentialStore,
        tokens: TokenService,
        verifications: VerificationCodeManager,
        mailer: EmailService,
        rotate_refresh_tokens: bool = False,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.verifications = verifications
        self.mailer = mailer
        self.rotate_refresh_tokens = rotate_refresh_tokens

    async def _get_user(self, user_id: str) -> User:
        user = await self.store.get_user_by_id(user_id)
        if user is None:
            raise UserNotFound(f"user {user_id} not found")
        return user

    async def send_code(self, user: User, verification_type: VerificationType) -> None:
        """Issue a fresh code of ``verification_type`` and mail it to the user."""
        data = await self.verifications.issue(user.email, verification_type)
        await self.mailer.send_verification_code(
            to=user.email,
            code=data.code,
            verification_type=verification_type,
            expires_in=self.verifications.config.ttl_for(verification_type),
            username=user.username,
        )

    async def signup(
        self, email: str, password: str, username: str | None = None
    ) -> tuple[User, TokenPair]:
        """Create an unverified user, mail a verification code and sign them in.

        The refresh token in the returned pair only becomes usable once the
        email is verified; until then the holder has the access token alone.
        """
        if await self.store.get_user_by_email(email) is not None:
            raise UserAlreadyExists(f"signup with registered email {email}")

        user = User(
            email=email,
            username=username,
            password_hash=hash_password(password),
            token_hash=new_token_hash(),
        )
        user = await self.store.create_user(user)
        await self.send_code(user, VerificationType.EMAIL_VERIFY)
        pair = await self.issue_token_pair(user)
        logger.info(f"User {user.id} signed up")
        return user, pair

    async def issue_token_pair(self, user: User) -> TokenPair:
        """Rotate the user's fingerprint and sign a fresh access/refresh pair.

        The new fingerprint is persisted before anything is signed, so a store
        failure leaves no refresh token bound to an unsaved hash.
        """
        token_hash = new_token_hash()
        await self.store.update_user_token_hash(user.id, token_hash)
        user.token_hash = token_hash
        return TokenPair(
            access_token=self.tokens.generate_access_token(user),
            refresh_token=self.tokens.generate_refresh_token(user),
        )

    async def login(self, email: str, password: str) -> tuple[User, TokenPair]:
        user = await self.store.get_user_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise InvalidCredentials(f"login failed for {email}")
        if not user.is_verified:
            raise UnverifiedUser(f"login by unverified user {user.id}")
        pair = await self.issue_token_pair(user)
        logger.info(f"User {user.id} logged in")
        return user, pair

    async def refresh(self, user: User) -> TokenPair:
        """Mint a new access token for a user whose refresh token was validated."""
        if not user.is_verified:
            raise UnverifiedUser(f"refresh by unverified user {user.id}")
        if self.rotate_refresh_tokens:
            return await self.issue_token_pair(user)
        return TokenPair(access_token=self.tokens.generate_access_token(user))

    async def resend_email_verification(self, email: str) -> None:
        user = await self.store.get_user_by_email(email)
        if user is None or user.is_verified:
            # Respond the same way for unknown and verified addresses
            logger.debug(f"Skipping verification resend for {email}")
            return
        await self.send_code(user, VerificationType.EMAIL_VERIFY)

    async def verify_email(self, email: str, code: str) -> User:
        """Redeem an email verification code; the user is verified by the redemption."""
        await self.verifications.redeem_verification_data(
            email, code, VerificationType.EMAIL_VERIFY
        )
        user = await self.store.get_user_by_email(email)
        if user is None:
            raise UserNotFound(f"verified email {email} has no user")
        return user

    async def request_password_reset(self, user_id: str) -> None:
        user = await self._get_user(user_id)
        await self.send_code(user, VerificationType.PASS_RESET)

    async def verify_password_reset(self, email: str, code: str) -> str:
        """Redeem a password reset code and return the grant for reset_password."""
        await self.verifications.redeem_verification_data(
            email, code, VerificationType.PASS_RESET
        )
        user = await self.store.get_user_by_email(email)
        if user is None:
            raise UserNotFound(f"password reset for {email} has no user")
        return self.tokens.generate_reset_grant(user)

    async def reset_password(
        self,
        user_id: str,
        password: str,
        password_confirm: str,
        reset_token: str,
    ) -> None:
        """Change the password; also rotates the fingerprint, revoking refresh tokens."""
        if password != password_confirm:
            raise PasswordMismatch(f"password confirmation mismatch for user {user_id}")
        user = await self.tokens.validate_reset_grant(reset_token, self.store)
        if user.id != user_id:
            raise TokenMalformed(f"reset grant for {user.id} presented by {user_id}")
        await self.store.update_user_password(user.id, hash_password(password), new_token_hash())
        logger.info(f"Password reset for user {user.id}")

    async def update_username(self, user_id: str, username: str) -> User:
        user = await self._get_user(user_id)
        await self.store.update_username(user.id, username)
        user.username = username
        return user
