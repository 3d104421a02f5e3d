import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from namaste_loyalty.services.rate_limit import (
    RateLimiter,
    RateLimitCounterRepository,
    SCOPE_IP,
    SCOPE_UNAVAILABLE,
    SCOPE_USER,
)


class BrokenRedis:
    async def hgetall(self, key):
        raise RedisConnectionError("connection refused")


@pytest.mark.anyio
async def test_user_scope_denies_after_five_attempts(limiter):
    for _ in range(5):
        decision = await limiter.check_and_record_attempt("user-1", "10.0.0.1")
        assert decision.allowed

    decision = await limiter.check_and_record_attempt("user-1", "10.0.0.1")
    assert not decision.allowed
    assert decision.scope == SCOPE_USER
    assert decision.retry_after == 24 * 60 * 60

    # 其他用户不受影响
    assert (await limiter.check_and_record_attempt("user-2", "10.0.0.2")).allowed


@pytest.mark.anyio
async def test_user_window_resets_after_24_hours(limiter, fake_redis, clock):
    for _ in range(6):
        await limiter.check_and_record_attempt("user-1", None)

    clock.advance(24 * 60 * 60 + 1)
    decision = await limiter.check_and_record_attempt("user-1", None)
    assert decision.allowed
    assert fake_redis.store["rate_limit:redeem:user_user-1"]["count"] == "1"


@pytest.mark.anyio
async def test_ip_scope_denies_after_ten_attempts(limiter):
    for i in range(10):
        decision = await limiter.check_and_record_attempt(f"user-{i}", "10.0.0.9")
        assert decision.allowed

    decision = await limiter.check_and_record_attempt("user-x", "10.0.0.9")
    assert not decision.allowed
    assert decision.scope == SCOPE_IP


@pytest.mark.anyio
async def test_ip_scope_skipped_without_ip(limiter, fake_redis):
    await limiter.check_and_record_attempt("user-1", None)
    assert not any(key.startswith("rate_limit:redeem:ip_") for key in fake_redis.store)


@pytest.mark.anyio
async def test_global_threshold_alerts_once_without_denying(fake_redis, clock):
    limiter = RateLimiter(
        RateLimitCounterRepository(fake_redis),
        global_alert_threshold=3,
        clock=clock,
    )
    alerts = []
    for i in range(6):
        decision = await limiter.check_and_record_attempt(f"user-{i}", None)
        assert decision.allowed
        alerts.append(decision.global_alert)

    assert alerts == [False, False, False, True, False, False]

    # 新窗口可以再次告警
    clock.advance(10 * 60)
    for i in range(4):
        decision = await limiter.check_and_record_attempt(f"user-new-{i}", None)
    assert decision.global_alert


@pytest.mark.anyio
async def test_counter_keys_expire_with_window(limiter, fake_redis):
    await limiter.check_and_record_attempt("user-1", "10.0.0.1")
    assert fake_redis.ttls["rate_limit:redeem:user_user-1"] == 24 * 60 * 60
    assert fake_redis.ttls["rate_limit:redeem:ip_10.0.0.1"] == 60 * 60
    assert fake_redis.ttls["rate_limit:redeem:global"] == 10 * 60


@pytest.mark.anyio
async def test_fails_open_when_store_unavailable():
    limiter = RateLimiter(RateLimitCounterRepository(BrokenRedis()), fail_open=True)
    decision = await limiter.check_and_record_attempt("user-1", "10.0.0.1")
    assert decision.allowed


@pytest.mark.anyio
async def test_fails_closed_when_configured():
    limiter = RateLimiter(RateLimitCounterRepository(BrokenRedis()), fail_open=False)
    decision = await limiter.check_and_record_attempt("user-1", "10.0.0.1")
    assert not decision.allowed
    assert decision.scope == SCOPE_UNAVAILABLE
