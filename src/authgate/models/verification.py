"""Verification code model for email confirmation and password reset."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlmodel import Field, SQLModel


class VerificationType(str, Enum):
    """What a verification code authorizes."""

    EMAIL_VERIFY = "email_verify"
    PASS_RESET = "pass_reset"


class VerificationData(SQLModel, table=True):
    """Single outstanding verification code for an email address."""

    __tablename__ = "verifications"

    email: str = Field(
        sa_column=Column(
            String(100),
            ForeignKey("users.email", ondelete="CASCADE", onupdate="CASCADE"),
            primary_key=True,
        ),
        description="Email address of the user the code was sent to",
    )
    code: str = Field(max_length=10, description="Random verification code")
    type: VerificationType = Field(description="What the code authorizes")
    expires_at: datetime = Field(
        sa_type=DateTime(timezone=True),  # type: ignore[call-overload]
        description="Code expiration time",
    )
