"""Sliding-window rate limiting for credential and code endpoints."""

import asyncio
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from enum import Enum

from fastapi import Request


class RateLimitType(str, Enum):
    AUTH = "auth"  # signup and login, per client IP
    VERIFY = "verify"  # code redemption, per target email
    SEND_CODE = "send_code"  # code issuance and mail, per target email or user


@dataclass(frozen=True)
class RateLimitConfig:
    requests: int
    window_seconds: int


# Redemption is the tightest: an 8-char code must not be guessable within its lifetime
RATE_LIMIT_CONFIG: dict[RateLimitType, RateLimitConfig] = {
    RateLimitType.AUTH: RateLimitConfig(requests=10, window_seconds=60),
    RateLimitType.VERIFY: RateLimitConfig(requests=5, window_seconds=300),
    RateLimitType.SEND_CODE: RateLimitConfig(requests=3, window_seconds=300),
}

# How often check() sweeps identifiers whose hits have all left the window
CLEANUP_INTERVAL_SECONDS = 60


@dataclass
class RateLimitResult:
    success: bool
    limit: int
    remaining: int
    reset: int  # epoch seconds when the oldest counted hit leaves the window


class InMemoryRateLimiter:
    """Per-process limiter keeping a deque of hit times per (type, identifier).

    Counts are not shared between workers; a multi-instance deployment needs
    a shared backend instead.
    """

    def __init__(self, limits: dict[RateLimitType, RateLimitConfig] | None = None) -> None:
        self.limits = limits or RATE_LIMIT_CONFIG
        self._hits: dict[tuple[RateLimitType, str], deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()
        self._last_cleanup = time.time()

    async def check(self, identifier: str, limit_type: RateLimitType) -> RateLimitResult:
        """Record a hit for ``identifier`` unless it is already over the limit."""
        config = self.limits[limit_type]
        now = time.time()

        async with self._lock:
            if now - self._last_cleanup >= CLEANUP_INTERVAL_SECONDS:
                self._sweep(now)

            hits = self._hits[(limit_type, identifier)]
            cutoff = now - config.window_seconds
            while hits and hits[0] <= cutoff:
                hits.popleft()

            allowed = len(hits) < config.requests
            if allowed:
                hits.append(now)

            return RateLimitResult(
                success=allowed,
                limit=config.requests,
                remaining=config.requests - len(hits),
                reset=int(hits[0] + config.window_seconds),
            )

    def _sweep(self, now: float) -> int:
        stale = [
            key
            for key, hits in self._hits.items()
            if not hits or hits[-1] <= now - self.limits[key[0]].window_seconds
        ]
        for key in stale:
            del self._hits[key]
        self._last_cleanup = now
        return len(stale)

    async def cleanup_old_entries(self) -> int:
        """Drop identifiers with no hits left in their window.

        Returns:
            Number of identifiers removed
        """
        async with self._lock:
            return self._sweep(time.time())

    def __len__(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        self._hits.clear()


_rate_limiter = InMemoryRateLimiter()


def get_rate_limiter() -> InMemoryRateLimiter:
    return _rate_limiter


def get_client_ip(request: Request) -> str:
    """Best-effort client address; proxy headers win over the socket peer."""
    for header in ("x-forwarded-for", "x-real-ip"):
        value = request.headers.get(header)
        if value:
            # X-Forwarded-For lists every hop; the client is the first
            return value.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }
    if not result.success:
        headers["Retry-After"] = str(max(0, result.reset - int(time.time())))
    return headers
