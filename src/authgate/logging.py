"""Logging setup shared by the app, uvicorn and the CLI."""

import logging.config
from typing import Any

from authgate.config import settings

# Resolved lazily by dictConfig so this module does not import the API package
REQUEST_FILTER = {"()": "authgate.api.middleware.RequestContextFilter"}

FORMATS = {
    "dev": "%(levelname)s:     [%(request_id)s] %(name)s - %(message)s",
    "prod": "%(asctime)s - [%(request_id)s] %(name)s - %(levelname)s - %(message)s",
}

UVICORN_FORMATS = {
    "dev": {
        "access": '%(levelprefix)s "%(request_line)s" %(status_code)s',
        "default": "%(levelprefix)s [%(request_id)s] %(message)s",
    },
    "prod": {
        "access": '%(levelprefix)s %(client_addr)s - "%(request_line)s" %(status_code)s',
        "default": "%(asctime)s %(levelprefix)s [%(request_id)s] %(message)s",
    },
}

# Libraries whose INFO output drowns the request log
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "aiosmtplib", "sqlalchemy.engine")


def _profile() -> str:
    return "dev" if settings.is_development else "prod"


def _stdout_handler(formatter: str, with_request_id: bool = True) -> dict[str, Any]:
    handler: dict[str, Any] = {
        "class": "logging.StreamHandler",
        "formatter": formatter,
        "stream": "ext://sys.stdout",
    }
    if with_request_id:
        handler["filters"] = ["request_context"]
    return handler


def _quiet() -> dict[str, Any]:
    return {name: {"level": "WARNING"} for name in QUIET_LOGGERS}


def get_uvicorn_log_config() -> dict[str, Any]:
    """dictConfig for uvicorn; application records carry the request ID."""
    formats = UVICORN_FORMATS[_profile()]
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_context": REQUEST_FILTER},
        "formatters": {
            "access": {"()": "uvicorn.logging.AccessFormatter", "fmt": formats["access"]},
            "default": {"()": "uvicorn.logging.DefaultFormatter", "fmt": formats["default"]},
        },
        "handlers": {
            "access": _stdout_handler("access", with_request_id=False),
            "default": _stdout_handler("default"),
        },
        "loggers": {
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            **_quiet(),
        },
        "root": {"handlers": ["default"], "level": settings.log_level},
    }


def setup_logging() -> None:
    """Configure logging for CLI commands and for running outside uvicorn."""
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_context": REQUEST_FILTER},
            "formatters": {"plain": {"format": FORMATS[_profile()]}},
            "handlers": {"stdout": _stdout_handler("plain")},
            "loggers": _quiet(),
            "root": {"handlers": ["stdout"], "level": settings.log_level},
        }
    )
