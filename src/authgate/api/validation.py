"""Request body shapes checked before account and verification handlers run.

These are input-shape checks, not trust boundaries: a body that passes is
merely well-formed. Failures become a 400 through the RequestValidationError
handler before the handler is invoked.
"""

import re

from pydantic import BaseModel, EmailStr, Field, field_validator

from authgate.config import settings

CODE_PATTERN = r"^[A-Za-z0-9]+$"


def check_password_policy(password: str) -> str:
    if len(password) < settings.password_min_length:
        raise ValueError(f"must be at least {settings.password_min_length} characters long")
    if not re.search(r"[A-Za-z]", password) or not re.search(r"\d", password):
        raise ValueError("must contain at least one letter and one digit")
    return password


class EmailField(BaseModel):
    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class UserCredentials(EmailField):
    """Body of /signup and /login."""

    password: str = Field(max_length=128)
    username: str | None = Field(default=None, min_length=1, max_length=225)

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return check_password_policy(value)


class VerificationRequest(EmailField):
    """Body of the /verify endpoints."""

    code: str = Field(min_length=1, max_length=10, pattern=CODE_PATTERN)


class ResendVerificationRequest(EmailField):
    pass


class UsernameUpdate(BaseModel):
    username: str = Field(min_length=1, max_length=225)


class PasswordReset(BaseModel):
    """Body of /reset-password."""

    password: str = Field(max_length=128)
    password_confirm: str = Field(max_length=128)
    reset_token: str = Field(min_length=1)

    @field_validator("password")
    @classmethod
    def password_policy(cls, value: str) -> str:
        return check_password_policy(value)


def validate_user(credentials: UserCredentials) -> UserCredentials:
    """Signup/login guard: email format and password policy."""
    return credentials


def validate_verification_data(data: VerificationRequest) -> VerificationRequest:
    """Verification guard: email and code present and well-formed."""
    return data
