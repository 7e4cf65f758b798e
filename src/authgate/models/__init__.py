"""SQLModel database models."""

from authgate.models.base import TimestampMixin, ensure_utc, generate_nanoid, utcnow
from authgate.models.user import User, UserRead
from authgate.models.verification import VerificationData, VerificationType

__all__ = [
    "TimestampMixin",
    "User",
    "UserRead",
    "VerificationData",
    "VerificationType",
    "ensure_utc",
    "generate_nanoid",
    "utcnow",
]
