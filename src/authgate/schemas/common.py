"""Response envelope and token payloads."""

from typing import Any

from pydantic import BaseModel

from authgate.models import UserRead


class GenericResponse[T](BaseModel):
    """Envelope used by every endpoint, success or failure."""

    status: bool
    message: str
    data: T | None = None


class FieldError(BaseModel):
    field: str
    message: str


class TokenData(BaseModel):
    """Tokens returned by login and refresh."""

    access_token: str
    refresh_token: str | None = None
    token_type: str = "bearer"


class SignupData(TokenData):
    """The new account and the token pair issued with it."""

    user: UserRead


class ResetGrant(BaseModel):
    """Proof of a redeemed password reset code, required by /reset-password."""

    reset_token: str


def error_body(message: str, data: Any = None) -> dict[str, Any]:
    return GenericResponse[Any](status=False, message=message, data=data).model_dump()
