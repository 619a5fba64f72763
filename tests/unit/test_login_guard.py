"""Tests for the login brute-force guard (src/agrogate/core/rate_limit.py)."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.asyncio import Redis
from redis.exceptions import ConnectionError as RedisConnectionError

from src.agrogate.core.exceptions import RateLimitedError
from src.agrogate.core.rate_limit import LoginGuard, get_guard_address, get_rate_limit_key

pytestmark = pytest.mark.unit


@pytest.fixture
def guard(fake_redis: Redis) -> LoginGuard:
    return LoginGuard(
        fake_redis, max_attempts=3, window_seconds=60, max_failures=3, block_seconds=900
    )


@pytest.fixture
def broken_redis() -> MagicMock:
    """A Redis client whose every command fails with a connection error."""
    redis = MagicMock()
    error = RedisConnectionError("Connection refused")
    for command in ("incr", "expire", "ttl", "delete", "get", "set"):
        setattr(redis, command, AsyncMock(side_effect=error))
    redis.pipeline = MagicMock(side_effect=error)
    return redis


class TestCheckIp:
    async def test_allows_up_to_the_limit(self, guard: LoginGuard):
        for _ in range(3):
            await guard.check_ip("10.0.0.1")

    async def test_rejects_over_the_limit_with_retry_after(self, guard: LoginGuard):
        for _ in range(3):
            await guard.check_ip("10.0.0.1")

        with pytest.raises(RateLimitedError) as exc_info:
            await guard.check_ip("10.0.0.1")

        assert exc_info.value.status_code == 429
        assert 0 < exc_info.value.retry_after <= 60
        assert exc_info.value.headers == {"Retry-After": str(exc_info.value.retry_after)}

    async def test_addresses_are_counted_separately(self, guard: LoginGuard):
        for _ in range(3):
            await guard.check_ip("10.0.0.1")
        await guard.check_ip("10.0.0.2")

    async def test_window_expires(self, fake_redis: Redis):
        guard = LoginGuard(
            fake_redis, max_attempts=1, window_seconds=1, max_failures=3, block_seconds=1
        )
        await guard.check_ip("10.0.0.1")
        with pytest.raises(RateLimitedError):
            await guard.check_ip("10.0.0.1")

        await asyncio.sleep(1.1)
        await guard.check_ip("10.0.0.1")

    async def test_counter_without_expiry_gets_the_window(
        self, guard: LoginGuard, fake_redis: Redis
    ):
        await fake_redis.set("login_rate:ip:10.0.0.1", 3)

        with pytest.raises(RateLimitedError):
            await guard.check_ip("10.0.0.1")

        assert 0 < await fake_redis.ttl("login_rate:ip:10.0.0.1") <= 60

    async def test_window_is_not_extended_by_later_attempts(
        self, guard: LoginGuard, fake_redis: Redis
    ):
        await guard.check_ip("10.0.0.1")
        await fake_redis.expire("login_rate:ip:10.0.0.1", 5)
        await guard.check_ip("10.0.0.1")

        assert await fake_redis.ttl("login_rate:ip:10.0.0.1") <= 5

    async def test_missing_ip_is_not_counted(self, guard: LoginGuard, fake_redis: Redis):
        await guard.check_ip(None)
        assert await fake_redis.keys("login_rate:*") == []


class TestAccountLockout:
    async def test_locks_after_max_failures(self, guard: LoginGuard):
        for _ in range(3):
            await guard.record_failure("farmer@example.com")

        with pytest.raises(RateLimitedError, match="locked"):
            await guard.check_account("farmer@example.com")

    async def test_email_is_normalized(self, guard: LoginGuard):
        for _ in range(3):
            await guard.record_failure("  Farmer@Example.com ")

        with pytest.raises(RateLimitedError):
            await guard.check_account("farmer@example.com")

    async def test_clear_resets_the_counter(self, guard: LoginGuard, fake_redis: Redis):
        await guard.record_failure("farmer@example.com")
        await guard.record_failure("farmer@example.com")
        await guard.clear_failures("farmer@example.com")
        await guard.record_failure("farmer@example.com")

        await guard.check_account("farmer@example.com")
        assert await fake_redis.get("login_failures:farmer@example.com") == "1"

    async def test_failure_counter_expires(self, guard: LoginGuard, fake_redis: Redis):
        await guard.record_failure("farmer@example.com")

        assert 0 < await fake_redis.ttl("login_failures:farmer@example.com") <= 900

    async def test_lock_replaces_counter(self, guard: LoginGuard, fake_redis: Redis):
        for _ in range(3):
            await guard.record_failure("farmer@example.com")

        assert await fake_redis.get("login_failures:farmer@example.com") is None
        assert 0 < await fake_redis.ttl("login_block:farmer@example.com") <= 900

    async def test_lock_expires(self, fake_redis: Redis):
        guard = LoginGuard(
            fake_redis, max_attempts=10, window_seconds=60, max_failures=2, block_seconds=1
        )
        await guard.record_failure("farmer@example.com")
        await guard.record_failure("farmer@example.com")
        with pytest.raises(RateLimitedError):
            await guard.check_account("farmer@example.com")

        await asyncio.sleep(1.1)
        await guard.check_account("farmer@example.com")


class TestFailOpen:
    """An unreachable Redis must never block a login."""

    async def test_check_ip_allows(self, broken_redis: MagicMock):
        guard = LoginGuard(
            broken_redis, max_attempts=1, window_seconds=60, max_failures=1, block_seconds=60
        )
        await guard.check_ip("10.0.0.1")

    async def test_check_account_allows(self, broken_redis: MagicMock):
        guard = LoginGuard(
            broken_redis, max_attempts=1, window_seconds=60, max_failures=1, block_seconds=60
        )
        await guard.check_account("farmer@example.com")

    async def test_record_and_clear_do_not_raise(self, broken_redis: MagicMock):
        guard = LoginGuard(
            broken_redis, max_attempts=1, window_seconds=60, max_failures=1, block_seconds=60
        )
        await guard.record_failure("farmer@example.com")
        await guard.clear_failures("farmer@example.com")


class TestGetRateLimitKey:
    def test_uses_remote_address_only(self):
        request = MagicMock()
        request.client.host = "192.168.1.100"
        request.headers = {"X-Forwarded-For": "1.2.3.4"}

        assert get_rate_limit_key(request) == "192.168.1.100"


def _request(peer: str | None, forwarded_for: str | None = None) -> MagicMock:
    request = MagicMock()
    request.client = MagicMock(host=peer) if peer else None
    request.headers = {"x-forwarded-for": forwarded_for} if forwarded_for else {}
    return request


class TestGetGuardAddress:
    def test_untrusted_peer_ignores_forwarded_for(self):
        request = _request("198.51.100.4", "203.0.113.9")

        assert get_guard_address(request, []) == "198.51.100.4"

    def test_trusted_proxy_uses_first_hop(self):
        request = _request("10.0.0.1", "203.0.113.9, 10.0.0.1")

        assert get_guard_address(request, ["10.0.0.1"]) == "203.0.113.9"

    def test_trusted_proxy_without_header_falls_back_to_peer(self):
        assert get_guard_address(_request("10.0.0.1"), ["10.0.0.1"]) == "10.0.0.1"

    def test_no_peer(self):
        assert get_guard_address(_request(None, "203.0.113.9"), ["10.0.0.1"]) is None
