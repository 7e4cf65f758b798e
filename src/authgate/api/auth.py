"""Authentication and verification endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from authgate.api.deps import (
    AccessIdentity,
    AccountsDep,
    AuthRateLimit,
    RefreshIdentity,
    ResetCodeRateLimit,
    VerifyRateLimit,
    enforce_rate_limit,
)
from authgate.api.validation import (
    PasswordReset,
    ResendVerificationRequest,
    UserCredentials,
    UsernameUpdate,
    VerificationRequest,
    validate_user,
    validate_verification_data,
)
from authgate.errors import TokenRevoked
from authgate.models import UserRead
from authgate.schemas import GenericResponse, ResetGrant, SignupData, TokenData
from authgate.services.rate_limit import RateLimitType

logger = logging.getLogger(__name__)

router = APIRouter()

ValidUser = Annotated[UserCredentials, Depends(validate_user)]
ValidVerification = Annotated[VerificationRequest, Depends(validate_verification_data)]


@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    response_model=GenericResponse[SignupData],
)
async def signup(_rate_limit: AuthRateLimit, credentials: ValidUser, accounts: AccountsDep):
    """Register a new, unverified user, mail a verification code and issue a token pair.

    The refresh token is refused until the email is verified.
    """
    user, pair = await accounts.signup(
        credentials.email, credentials.password, credentials.username
    )
    return GenericResponse(
        status=True,
        message="Please verify your email address using the code sent to your inbox",
        data=SignupData(
            access_token=pair.access_token,
            refresh_token=pair.refresh_token,
            user=UserRead.model_validate(user),
        ),
    )


@router.post("/login", response_model=GenericResponse[TokenData])
async def login(_rate_limit: AuthRateLimit, credentials: ValidUser, accounts: AccountsDep):
    """Exchange email and password for an access/refresh token pair.

    Issuing the pair rotates the user's fingerprint, so refresh tokens from
    earlier logins stop working.
    """
    _user, pair = await accounts.login(credentials.email, credentials.password)
    return GenericResponse(
        status=True,
        message="Successfully logged in",
        data=TokenData(access_token=pair.access_token, refresh_token=pair.refresh_token),
    )


@router.get("/refresh-token", response_model=GenericResponse[TokenData])
async def refresh_token(identity: RefreshIdentity, accounts: AccountsDep):
    """Mint a new access token from a valid refresh token."""
    if identity.user is None:
        raise TokenRevoked(f"refresh identity for {identity.user_id} carries no user")
    pair = await accounts.refresh(identity.user)
    return GenericResponse(
        status=True,
        message="Successfully generated new access token",
        data=TokenData(access_token=pair.access_token, refresh_token=pair.refresh_token),
    )


@router.get("/greet", response_model=GenericResponse[None])
async def greet(identity: AccessIdentity):
    return GenericResponse[None](status=True, message=f"hello, {identity.user_id}")


@router.get("/get-password-reset-code", response_model=GenericResponse[None])
async def get_password_reset_code(
    identity: AccessIdentity,
    _rate_limit: ResetCodeRateLimit,
    accounts: AccountsDep,
):
    """Mail a password reset code to the authenticated user."""
    await accounts.request_password_reset(identity.user_id)
    return GenericResponse[None](
        status=True,
        message="Please check your mail for the password reset code",
    )


@router.post("/verify/mail", response_model=GenericResponse[UserRead])
async def verify_mail(
    data: ValidVerification,
    _rate_limit: VerifyRateLimit,
    accounts: AccountsDep,
):
    """Redeem an email verification code."""
    user = await accounts.verify_email(data.email, data.code)
    return GenericResponse(
        status=True,
        message="Email has been successfully verified",
        data=UserRead.model_validate(user),
    )


@router.post("/verify/mail/resend", response_model=GenericResponse[None])
async def resend_verification_mail(body: ResendVerificationRequest, accounts: AccountsDep):
    """Send a new email verification code, replacing any outstanding one."""
    await enforce_rate_limit(f"email:{body.email}", RateLimitType.SEND_CODE)
    await accounts.resend_email_verification(body.email)
    return GenericResponse[None](
        status=True,
        message="If the address belongs to an unverified account, a new code is on its way",
    )


@router.post("/verify/password-reset", response_model=GenericResponse[ResetGrant])
async def verify_password_reset(
    data: ValidVerification,
    _rate_limit: VerifyRateLimit,
    accounts: AccountsDep,
):
    """Redeem a password reset code and return the grant accepted by /reset-password."""
    reset_token = await accounts.verify_password_reset(data.email, data.code)
    return GenericResponse(
        status=True,
        message="Password reset code verification successful",
        data=ResetGrant(reset_token=reset_token),
    )


@router.put("/update-username", response_model=GenericResponse[UserRead])
async def update_username(identity: AccessIdentity, body: UsernameUpdate, accounts: AccountsDep):
    user = await accounts.update_username(identity.user_id, body.username)
    return GenericResponse(
        status=True,
        message="Successfully updated username",
        data=UserRead.model_validate(user),
    )


@router.put("/reset-password", response_model=GenericResponse[None])
async def reset_password(identity: AccessIdentity, body: PasswordReset, accounts: AccountsDep):
    """Set a new password using a grant from /verify/password-reset.

    Also revokes every outstanding refresh token for the user.
    """
    await accounts.reset_password(
        identity.user_id,
        body.password,
        body.password_confirm,
        body.reset_token,
    )
    return GenericResponse[None](status=True, message="Password has been reset successfully")
