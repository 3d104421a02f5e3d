import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-loyalty-engine-0123456789")
os.environ.setdefault("ENVIRONMENT", "testing")

from datetime import timedelta

import pytest
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from namaste_loyalty.config import get_settings
from namaste_loyalty.database import Base, seed_store_locations
from namaste_loyalty import models  # noqa: F401
from namaste_loyalty.models.delivery_code import DeliveryCode
from namaste_loyalty.models.reward import Reward
from namaste_loyalty.models.user import User
from namaste_loyalty.services.rate_limit import RateLimiter, RateLimitCounterRepository
from namaste_loyalty.utils.timezone import utc_now_naive


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakePipeline:
    def __init__(self, redis: "FakeRedis") -> None:
        self.redis = redis
        self.commands = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None

    async def delete(self, key):
        self.commands.append(("delete", key))
        return self

    async def hset(self, key, mapping):
        self.commands.append(("hset", key, mapping))
        return self

    async def expire(self, key, seconds):
        self.commands.append(("expire", key, seconds))
        return self

    async def execute(self):
        for command in self.commands:
            if command[0] == "delete":
                self.redis.store.pop(command[1], None)
            elif command[0] == "hset":
                self.redis.store.setdefault(command[1], {}).update(
                    {k: str(v) for k, v in command[2].items()}
                )
            elif command[0] == "expire":
                self.redis.ttls[command[1]] = command[2]
        self.commands = []
        return []


class FakeRedis:
    """只实现限流计数器用到的哈希命令"""

    def __init__(self) -> None:
        self.store: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}

    async def hgetall(self, key):
        return dict(self.store.get(key, {}))

    async def hincrby(self, key, field, amount=1):
        data = self.store.setdefault(key, {})
        data[field] = str(int(data.get(field, 0)) + amount)
        return int(data[field])

    async def hsetnx(self, key, field, value):
        data = self.store.setdefault(key, {})
        if field in data:
            return 0
        data[field] = str(value)
        return 1

    def pipeline(self, transaction=True):
        return FakePipeline(self)


class Clock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with factory() as session:
        await seed_store_locations(session)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def limiter(fake_redis, clock):
    return RateLimiter(RateLimitCounterRepository(fake_redis), clock=clock)


async def create_user(db, points: int = 0, is_admin: bool = False, email: str = None) -> User:
    user = User(
        email=email or f"user{os.urandom(4).hex()}@example.com",
        points=points,
        is_admin=is_admin,
    )
    db.add(user)
    await db.commit()
    return user


async def create_code(
    db,
    code: str,
    points_awarded=5,
    expires_in: timedelta = timedelta(days=10),
    is_used: bool = False,
) -> DeliveryCode:
    delivery_code = DeliveryCode(
        code=code,
        points_awarded=points_awarded,
        expires_at=utc_now_naive() + expires_in,
        is_used=is_used,
    )
    db.add(delivery_code)
    await db.commit()
    return delivery_code


async def create_reward(db, points_cost: int = 10, category: str = "in_store_item", active: bool = True) -> Reward:
    reward = Reward(
        name="Mango Lassi",
        name_ja="マンゴーラッシー",
        description="One free mango lassi",
        points_cost=points_cost,
        category=category,
        active=active,
    )
    db.add(reward)
    await db.commit()
    return reward


def make_token(user_id: str) -> str:
    settings = get_settings()
    return jwt.encode({"sub": user_id}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {make_token(user.id)}"}
