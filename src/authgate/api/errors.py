"""Exception handlers rendering every failure in the response envelope."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from authgate.errors import AuthgateError, TokenError
from authgate.schemas import FieldError, error_body

logger = logging.getLogger(__name__)


async def authgate_error_handler(request: Request, exc: AuthgateError) -> JSONResponse:
    """Return the class's generic message; the exception text only goes to the log."""
    if exc.status_code >= 500:
        logger.error(
            f"{request.method} {request.url.path}: {type(exc).__name__}: {exc}",
            exc_info=exc.__cause__ is not None,
        )
    else:
        logger.warning(f"{request.method} {request.url.path}: {type(exc).__name__}: {exc}")

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, TokenError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are a 400 with one entry per offending field."""
    fields = [
        FieldError(
            field=".".join(str(part) for part in error["loc"] if part != "body"),
            message=error["msg"],
        ).model_dump()
        for error in exc.errors()
    ]
    logger.debug(f"{request.method} {request.url.path}: invalid body {fields}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid request body", fields),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=exc.headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AuthgateError, authgate_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_error_handler)  # type: ignore[arg-type]
