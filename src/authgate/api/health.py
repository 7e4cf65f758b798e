"""Liveness and readiness probes."""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from authgate.api.deps import SessionDep, get_token_service
from authgate.errors import SigningError

logger = logging.getLogger(__name__)

router = APIRouter()


async def database_reachable(session: AsyncSession) -> bool:
    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database probe failed: {e!r}")
        return False
    return True


def signing_configured() -> bool:
    try:
        get_token_service()
    except SigningError as e:
        logger.error(f"Token signing misconfigured: {e}")
        return False
    return True


@router.get("")
async def health_check():
    """Process is up; touches nothing else."""
    return {"status": "ok"}


@router.get("/db")
async def health_check_db(session: SessionDep):
    if not await database_reachable(session):
        return JSONResponse(
            status_code=503, content={"status": "error", "database": "disconnected"}
        )
    return {"status": "ok", "database": "connected"}


@router.get("/ready")
async def readiness_check(session: SessionDep):
    """Ready to serve auth traffic: the credential store answers and tokens can be signed."""
    checks = {
        "database": await database_reachable(session),
        "signing": signing_configured(),
    }
    body = {"status": "ok" if all(checks.values()) else "degraded", **checks}
    if not all(checks.values()):
        return JSONResponse(status_code=503, content=body)
    return body
