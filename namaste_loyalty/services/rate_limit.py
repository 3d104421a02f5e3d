"""
兑换码限流器

三个独立维度依次检查：
- 用户：每个用户 24 小时内最多 5 次
- IP：每个 IP 1 小时内最多 10 次（拿不到 IP 时跳过）
- 全局：10 分钟内超过 100 次只触发一次运营告警，不拒绝请求

计数器保存在 Redis 哈希中（count / reset_time / alerted），
now >= reset_time 时计数器重置为 1 并开启新窗口。
计数在并发下允许少量误差。
"""
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

from redis.exceptions import RedisError

from namaste_loyalty.config import Settings, get_settings
from namaste_loyalty.utils.metrics import RATE_LIMIT_DECISIONS

logger = logging.getLogger(__name__)

SCOPE_USER = "user"
SCOPE_IP = "ip"
SCOPE_GLOBAL = "global"
SCOPE_UNAVAILABLE = "unavailable"


@dataclass
class CounterState:
    """单个维度计数器的当前状态"""
    count: int
    reset_time: float
    alerted: bool = False


@dataclass
class RateLimitDecision:
    """限流判定结果"""
    allowed: bool
    scope: Optional[str] = None  # 拒绝时是哪个维度
    retry_after: int = 0  # 距窗口重置的秒数
    global_alert: bool = False  # 本次请求首次越过全局阈值
    global_count: int = 0


class RateLimitCounterRepository:
    """
    限流计数器存储

    每个维度一个 Redis 哈希，键为 ``<namespace>:<scope>``，
    scope 通过 user_scope / ip_scope / global_scope 构造。
    """

    def __init__(self, redis_client, namespace: str = "rate_limit:redeem"):
        self.redis = redis_client
        self.namespace = namespace

    @staticmethod
    def user_scope(user_id: str) -> str:
        return f"user_{user_id}"

    @staticmethod
    def ip_scope(ip_address: str) -> str:
        return f"ip_{ip_address}"

    @staticmethod
    def global_scope() -> str:
        return "global"

    def key_for(self, scope: str) -> str:
        return f"{self.namespace}:{scope}"

    async def hit(self, scope: str, window_seconds: int, now: float) -> CounterState:
        """
        记录一次尝试

        窗口未过期时原子自增；否则重置为 1 并设置新的 reset_time。
        键同时带上与窗口等长的 TTL，废弃的计数器会自动清理。
        """
        key = self.key_for(scope)
        data = await self.redis.hgetall(key)
        reset_time = float(data.get("reset_time", 0)) if data else 0.0

        if data and now < reset_time:
            count = await self.redis.hincrby(key, "count", 1)
            return CounterState(
                count=int(count),
                reset_time=reset_time,
                alerted=data.get("alerted") == "1",
            )

        reset_time = now + window_seconds
        async with self.redis.pipeline(transaction=True) as pipe:
            await pipe.delete(key)
            await pipe.hset(key, mapping={"count": 1, "reset_time": reset_time})
            await pipe.expire(key, int(window_seconds))
            await pipe.execute()
        return CounterState(count=1, reset_time=reset_time)

    async def mark_alerted(self, scope: str) -> bool:
        """设置 alerted 标记，只有第一次设置成功时返回 True"""
        return bool(await self.redis.hsetnx(self.key_for(scope), "alerted", "1"))


class RateLimiter:
    """兑换尝试的多维度限流"""

    def __init__(
        self,
        repository: RateLimitCounterRepository,
        user_max_attempts: int = 5,
        user_window_seconds: int = 24 * 60 * 60,
        ip_max_attempts: int = 10,
        ip_window_seconds: int = 60 * 60,
        global_alert_threshold: int = 100,
        global_window_seconds: int = 10 * 60,
        fail_open: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.repository = repository
        self.user_max_attempts = user_max_attempts
        self.user_window_seconds = user_window_seconds
        self.ip_max_attempts = ip_max_attempts
        self.ip_window_seconds = ip_window_seconds
        self.global_alert_threshold = global_alert_threshold
        self.global_window_seconds = global_window_seconds
        self.fail_open = fail_open
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        repository: RateLimitCounterRepository,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ) -> "RateLimiter":
        settings = settings or get_settings()
        return cls(
            repository,
            user_max_attempts=settings.rate_limit_user_max_attempts,
            user_window_seconds=settings.rate_limit_user_window_seconds,
            ip_max_attempts=settings.rate_limit_ip_max_attempts,
            ip_window_seconds=settings.rate_limit_ip_window_seconds,
            global_alert_threshold=settings.rate_limit_global_alert_threshold,
            global_window_seconds=settings.rate_limit_global_window_seconds,
            fail_open=settings.rate_limit_fail_open,
            clock=clock,
        )

    async def check_and_record_attempt(
        self,
        user_id: str,
        ip_address: Optional[str] = None,
    ) -> RateLimitDecision:
        """
        检查并记录一次兑换尝试

        Redis 不可用时按 fail_open 配置放行或拒绝，并记录错误日志。
        """
        now = self.clock()
        try:
            decision = await self._check(user_id, ip_address, now)
        except RedisError as exc:
            policy = "open" if self.fail_open else "closed"
            logger.error(
                "Rate limit store unavailable, failing %s (user=%s, ip=%s): %s",
                policy, user_id, ip_address, exc,
            )
            RATE_LIMIT_DECISIONS.labels(SCOPE_UNAVAILABLE, f"fail_{policy}").inc()
            if self.fail_open:
                return RateLimitDecision(allowed=True)
            return RateLimitDecision(allowed=False, scope=SCOPE_UNAVAILABLE)

        RATE_LIMIT_DECISIONS.labels(
            decision.scope or SCOPE_GLOBAL,
            "allowed" if decision.allowed else "denied",
        ).inc()
        return decision

    async def _check(
        self,
        user_id: str,
        ip_address: Optional[str],
        now: float,
    ) -> RateLimitDecision:
        repo = self.repository

        user_state = await repo.hit(repo.user_scope(user_id), self.user_window_seconds, now)
        if user_state.count > self.user_max_attempts:
            logger.warning("Redeem rate limit exceeded for user %s (%d attempts)", user_id, user_state.count)
            return self._deny(SCOPE_USER, user_state, now)

        if ip_address:
            ip_state = await repo.hit(repo.ip_scope(ip_address), self.ip_window_seconds, now)
            if ip_state.count > self.ip_max_attempts:
                logger.warning("Redeem rate limit exceeded for ip %s (%d attempts)", ip_address, ip_state.count)
                return self._deny(SCOPE_IP, ip_state, now)

        global_state = await repo.hit(repo.global_scope(), self.global_window_seconds, now)
        global_alert = False
        if global_state.count > self.global_alert_threshold and not global_state.alerted:
            global_alert = await repo.mark_alerted(repo.global_scope())
            if global_alert:
                logger.warning(
                    "Global redeem attempts crossed alert threshold: %d > %d",
                    global_state.count, self.global_alert_threshold,
                )

        return RateLimitDecision(
            allowed=True,
            global_alert=global_alert,
            global_count=global_state.count,
        )

    @staticmethod
    def _deny(scope: str, state: CounterState, now: float) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=False,
            scope=scope,
            retry_after=max(0, math.ceil(state.reset_time - now)),
        )


def get_rate_limiter() -> RateLimiter:
    """FastAPI 依赖：使用全局 Redis 客户端的限流器"""
    from namaste_loyalty.utils.redis_client import redis_client

    return RateLimiter.from_settings(RateLimitCounterRepository(redis_client))
