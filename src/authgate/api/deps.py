"""FastAPI dependencies for dependency injection.

The ``require_*`` dependencies are the authorization guards: FastAPI runs
them before the endpoint, and an exception raised by one stops the chain,
so neither later dependencies nor the endpoint execute.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Literal

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.api.validation import VerificationRequest, validate_verification_data
from authgate.config import settings
from authgate.database import get_session
from authgate.errors import MissingCredentials
from authgate.models import User
from authgate.services.accounts import AccountService
from authgate.services.email import email_service
from authgate.services.rate_limit import (
    RateLimitType,
    get_client_ip,
    get_rate_limiter,
    rate_limit_headers,
)
from authgate.services.store import CredentialStore, SQLCredentialStore
from authgate.services.tokens import TokenConfig, TokenService
from authgate.services.verification import VerificationCodeManager, VerificationConfig

logger = logging.getLogger(__name__)

SessionDep = Annotated[AsyncSession, Depends(get_session)]

security = HTTPBearer(auto_error=False)
BearerDep = Annotated[HTTPAuthorizationCredentials | None, Depends(security)]


@lru_cache
def get_token_service() -> TokenService:
    """Process-wide token service; raises SigningError on misconfigured secrets."""
    return TokenService(TokenConfig.from_settings(settings))


def get_store(session: SessionDep) -> CredentialStore:
    return SQLCredentialStore(session, timeout=settings.store_timeout_seconds)


TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]
StoreDep = Annotated[CredentialStore, Depends(get_store)]


def get_verification_manager(store: StoreDep) -> VerificationCodeManager:
    return VerificationCodeManager(VerificationConfig.from_settings(settings), store)


def get_account_service(
    store: StoreDep,
    tokens: TokenServiceDep,
    verifications: Annotated[VerificationCodeManager, Depends(get_verification_manager)],
) -> AccountService:
    return AccountService(
        store=store,
        tokens=tokens,
        verifications=verifications,
        mailer=email_service,
        rotate_refresh_tokens=settings.rotate_refresh_tokens,
    )


AccountsDep = Annotated[AccountService, Depends(get_account_service)]


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """Who is making the request; produced only by the require_* guards."""

    user_id: str
    token_type: Literal["access", "refresh"]
    user: User | None = None


def require_access_token(
    tokens: TokenServiceDep,
    credentials: BearerDep,
) -> AuthenticatedIdentity:
    """Guard for protected routes: a valid access token in the Authorization header."""
    if credentials is None:
        raise MissingCredentials("no bearer token on request")
    user_id = tokens.validate_access_token(credentials.credentials)
    return AuthenticatedIdentity(user_id=user_id, token_type="access")


async def require_refresh_token(
    tokens: TokenServiceDep,
    store: StoreDep,
    credentials: BearerDep,
) -> AuthenticatedIdentity:
    """Guard for /refresh-token: a refresh token whose fingerprint is still current."""
    if credentials is None:
        raise MissingCredentials("no bearer token on request")
    user = await tokens.validate_refresh_token(credentials.credentials, store)
    return AuthenticatedIdentity(user_id=user.id, token_type="refresh", user=user)


AccessIdentity = Annotated[AuthenticatedIdentity, Depends(require_access_token)]
RefreshIdentity = Annotated[AuthenticatedIdentity, Depends(require_refresh_token)]


async def enforce_rate_limit(identifier: str, limit_type: RateLimitType) -> None:
    """Raise 429 once ``identifier`` exceeds the limit for ``limit_type``."""
    result = await get_rate_limiter().check(identifier, limit_type)
    if not result.success:
        headers = rate_limit_headers(result)
        logger.warning(f"Rate limit {limit_type.value} exceeded for {identifier}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Too many requests. Please try again in {headers['Retry-After']} seconds",
            headers=headers,
        )


async def auth_rate_limit(request: Request) -> None:
    await enforce_rate_limit(f"ip:{get_client_ip(request)}", RateLimitType.AUTH)


async def verify_rate_limit(
    data: Annotated[VerificationRequest, Depends(validate_verification_data)],
) -> None:
    # Keyed by the target address so guessing cannot be spread across clients
    await enforce_rate_limit(f"email:{data.email}", RateLimitType.VERIFY)


async def reset_code_rate_limit(identity: AccessIdentity) -> None:
    await enforce_rate_limit(f"user:{identity.user_id}", RateLimitType.SEND_CODE)


AuthRateLimit = Annotated[None, Depends(auth_rate_limit)]
VerifyRateLimit = Annotated[None, Depends(verify_rate_limit)]
ResetCodeRateLimit = Annotated[None, Depends(reset_code_rate_limit)]
