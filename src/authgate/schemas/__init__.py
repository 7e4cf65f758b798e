"""Pydantic schemas for API requests/responses."""

from authgate.schemas.common import (
    FieldError,
    GenericResponse,
    ResetGrant,
    SignupData,
    TokenData,
    error_body,
)

__all__ = [
    "FieldError",
    "GenericResponse",
    "ResetGrant",
    "SignupData",
    "TokenData",
    "error_body",
]
