"""
Unit tests for the authentication rate limiter
"""
from backend.api.rate_limiting import AuthRateLimiter


def test_allows_up_to_capacity(clock):
    limiter = AuthRateLimiter(rate_per_minute=5, burst_size=2, clock=clock)

    results = [limiter.check_rate_limit("10.0.0.1")[0] for _ in range(8)]

    assert results == [True] * 7 + [False]


def test_refills_over_time(clock):
    limiter = AuthRateLimiter(rate_per_minute=60, burst_size=0, clock=clock)
    for _ in range(60):
        limiter.check_rate_limit("10.0.0.1")
    assert limiter.check_rate_limit("10.0.0.1")[0] is False

    clock.advance(1)

    assert limiter.check_rate_limit("10.0.0.1")[0] is True


def test_buckets_are_per_ip(clock):
    limiter = AuthRateLimiter(rate_per_minute=1, burst_size=0, clock=clock)

    assert limiter.check_rate_limit("10.0.0.1")[0] is True
    assert limiter.check_rate_limit("10.0.0.1")[0] is False
    assert limiter.check_rate_limit("10.0.0.2")[0] is True


def test_blocks_after_failed_authentications(clock):
    limiter = AuthRateLimiter(max_failed_attempts=3, clock=clock)
    for _ in range(3):
        limiter.record_failed_auth("10.0.0.1")

    allowed, reason = limiter.check_rate_limit("10.0.0.1")

    assert allowed is False
    assert "failed authentication" in reason


def test_failed_authentications_expire(clock):
    limiter = AuthRateLimiter(max_failed_attempts=3, clock=clock)
    for _ in range(3):
        limiter.record_failed_auth("10.0.0.1")

    clock.advance(3601)

    assert limiter.check_rate_limit("10.0.0.1")[0] is True


def test_trusted_ips_are_not_blocked(clock):
    limiter = AuthRateLimiter(max_failed_attempts=1, trusted_ips=["127.0.0.1"], clock=clock)
    limiter.record_failed_auth("127.0.0.1")

    assert limiter.check_rate_limit("127.0.0.1")[0] is True


def test_cleanup_drops_idle_state(clock):
    limiter = AuthRateLimiter(clock=clock)
    limiter.check_rate_limit("10.0.0.1")
    limiter.record_failed_auth("10.0.0.2")

    clock.advance(3601)
    limiter.check_rate_limit("10.0.0.3")

    assert "10.0.0.1" not in limiter.buckets
    assert "10.0.0.2" not in limiter.failed_auth_attempts
