"""User model."""

from datetime import datetime

from sqlmodel import Field, SQLModel

from authgate.models.base import TimestampMixin, generate_nanoid


class User(TimestampMixin, SQLModel, table=True):
    """User account model."""

    __tablename__ = "users"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    email: str = Field(unique=True, index=True, max_length=100)
    username: str | None = Field(default=None, max_length=225)
    password_hash: str = Field(max_length=225)
    # Seed for the refresh token fingerprint; rotating it revokes refresh tokens
    token_hash: str = Field(max_length=15)
    is_verified: bool = Field(default=False)


class UserRead(SQLModel):
    """Schema for reading a user."""

    id: str
    email: str
    username: str | None
    is_verified: bool
    created_at: datetime
