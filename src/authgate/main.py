"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from authgate.api.deps import get_token_service
from authgate.api.errors import register_exception_handlers
from authgate.api.middleware import REQUEST_ID_HEADER, RequestContextMiddleware
from authgate.api.router import api_router
from authgate.config import settings
from authgate.database import close_db, init_db

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Fail at boot rather than on the first login when secrets are unusable
    get_token_service()
    await init_db()
    logger.info("Authgate started")
    yield
    await close_db()


app = FastAPI(
    title="Authgate API",
    description="Access/refresh tokens and single-use verification codes",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug_enabled else None,
    redoc_url="/redoc" if settings.debug_enabled else None,
    openapi_url="/openapi.json" if settings.debug_enabled else None,
)

register_exception_handlers(app)

app.add_middleware(RequestContextMiddleware)  # type: ignore[arg-type]

app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", REQUEST_ID_HEADER],
    expose_headers=[REQUEST_ID_HEADER],
)

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    from authgate.logging import get_uvicorn_log_config

    uvicorn.run(
        "authgate.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_config=get_uvicorn_log_config(),
    )
