"""Rate limiter tests."""

from unittest.mock import MagicMock, patch

import pytest

from authgate.services.rate_limit import (
    RATE_LIMIT_CONFIG,
    InMemoryRateLimiter,
    RateLimitResult,
    RateLimitType,
    get_client_ip,
    rate_limit_headers,
)


class TestInMemoryRateLimiter:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self):
        limiter = InMemoryRateLimiter()
        limit = RATE_LIMIT_CONFIG[RateLimitType.VERIFY].requests

        results = [
            await limiter.check("a@example.com", RateLimitType.VERIFY) for _ in range(limit)
        ]

        assert all(r.success for r in results)
        assert results[-1].remaining == 0
        blocked = await limiter.check("a@example.com", RateLimitType.VERIFY)
        assert blocked.success is False

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        limiter = InMemoryRateLimiter()
        limit = RATE_LIMIT_CONFIG[RateLimitType.SEND_CODE].requests
        for _ in range(limit):
            await limiter.check("a@example.com", RateLimitType.SEND_CODE)

        assert (await limiter.check("b@example.com", RateLimitType.SEND_CODE)).success
        assert (await limiter.check("a@example.com", RateLimitType.VERIFY)).success

    @pytest.mark.asyncio
    async def test_window_slides(self):
        limiter = InMemoryRateLimiter()
        config = RATE_LIMIT_CONFIG[RateLimitType.AUTH]

        with patch("authgate.services.rate_limit.time.time", return_value=1000.0):
            for _ in range(config.requests):
                await limiter.check("1.2.3.4", RateLimitType.AUTH)
            assert not (await limiter.check("1.2.3.4", RateLimitType.AUTH)).success

        later = 1000.0 + config.window_seconds
        with patch("authgate.services.rate_limit.time.time", return_value=later):
            assert (await limiter.check("1.2.3.4", RateLimitType.AUTH)).success

    @pytest.mark.asyncio
    async def test_idle_identifiers_are_swept(self):
        with patch("authgate.services.rate_limit.time.time", return_value=1000.0):
            limiter = InMemoryRateLimiter()
            for i in range(500):
                await limiter.check(f"user{i}@example.com", RateLimitType.VERIFY)
            assert len(limiter) == 500

        with patch("authgate.services.rate_limit.time.time", return_value=11000.0):
            await limiter.check("late@example.com", RateLimitType.VERIFY)

        assert len(limiter) == 1

    @pytest.mark.asyncio
    async def test_cleanup_keeps_active_identifiers(self):
        window = RATE_LIMIT_CONFIG[RateLimitType.VERIFY].window_seconds
        with patch("authgate.services.rate_limit.time.time", return_value=1000.0):
            limiter = InMemoryRateLimiter()
            await limiter.check("old@example.com", RateLimitType.VERIFY)
        with patch("authgate.services.rate_limit.time.time", return_value=1000.0 + window - 1):
            await limiter.check("recent@example.com", RateLimitType.VERIFY)

        with patch("authgate.services.rate_limit.time.time", return_value=1000.0 + window):
            removed = await limiter.cleanup_old_entries()

        assert removed == 1
        assert len(limiter) == 1

    @pytest.mark.asyncio
    async def test_reset(self):
        limiter = InMemoryRateLimiter()
        for _ in range(RATE_LIMIT_CONFIG[RateLimitType.SEND_CODE].requests):
            await limiter.check("key", RateLimitType.SEND_CODE)

        limiter.reset()

        assert (await limiter.check("key", RateLimitType.SEND_CODE)).success


class TestGetClientIp:
    def make_request(self, headers: dict[str, str], host: str | None = "10.0.0.1") -> MagicMock:
        request = MagicMock()
        request.headers = headers
        request.client = MagicMock(host=host) if host else None
        return request

    def test_forwarded_for(self):
        request = self.make_request({"x-forwarded-for": "203.0.113.5, 10.0.0.2"})
        assert get_client_ip(request) == "203.0.113.5"

    def test_real_ip(self):
        assert get_client_ip(self.make_request({"x-real-ip": " 203.0.113.9 "})) == "203.0.113.9"

    def test_client_host(self):
        assert get_client_ip(self.make_request({})) == "10.0.0.1"

    def test_unknown(self):
        assert get_client_ip(self.make_request({}, host=None)) == "unknown"


def test_headers_include_retry_after_when_blocked():
    with patch("authgate.services.rate_limit.time.time", return_value=1000.0):
        blocked = RateLimitResult(success=False, limit=5, remaining=0, reset=1060)
        headers = rate_limit_headers(blocked)

    assert headers["X-RateLimit-Limit"] == "5"
    assert headers["X-RateLimit-Remaining"] == "0"
    assert headers["Retry-After"] == "60"


def test_headers_omit_retry_after_when_allowed():
    headers = rate_limit_headers(RateLimitResult(success=True, limit=5, remaining=4, reset=1060))
    assert "Retry-After" not in headers
