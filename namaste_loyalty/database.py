"""
数据库连接模块
"""
import asyncio
import logging
from pathlib import Path
from alembic import command
from alembic.config import Config
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from namaste_loyalty.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)

# 将 postgresql:// 转换为 postgresql+asyncpg://
database_url = settings.database_url.replace(
    "postgresql://", "postgresql+asyncpg://"
)

engine = create_async_engine(
    database_url,
    echo=False,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """SQLAlchemy 基类"""
    pass


async def get_db():
    """获取数据库会话依赖"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def run_migrations() -> None:
    """运行 Alembic 数据库迁移"""
    config_path = Path(__file__).resolve().parents[1] / "alembic.ini"
    alembic_cfg = Config(str(config_path))
    # 保留应用自己的 JSON 日志配置
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")


async def init_db():
    """初始化数据库表"""
    # 先导入所有模型，确保它们注册到 Base.metadata
    from namaste_loyalty import models  # noqa: F401

    # 创建基础表结构（如果不存在）
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # 运行 Alembic 迁移（处理增量变更）
    await asyncio.to_thread(run_migrations)
    async with AsyncSessionLocal() as session:
        await seed_store_locations(session)


DEFAULT_STORE_LOCATIONS = {
    "NAMASTE-TOKYO-MAIN": {
        "name": "Tokyo Main Restaurant",
        "address": "1-2-3 Shibuya, Tokyo",
        "latitude": 35.6812,
        "longitude": 139.6314,
    },
    "NAMASTE-OSAKA-MAIN": {
        "name": "Osaka Main Restaurant",
        "address": "4-5-6 Namba, Osaka",
        "latitude": 34.6937,
        "longitude": 135.5022,
    },
}


async def seed_store_locations(session: AsyncSession) -> int:
    """确保默认门店二维码位置存在，返回新写入的数量"""
    from sqlalchemy import select
    from namaste_loyalty.models.store_location import StoreLocation

    created = 0
    for qr_code, data in DEFAULT_STORE_LOCATIONS.items():
        result = await session.execute(
            select(StoreLocation).where(StoreLocation.qr_code == qr_code)
        )
        if result.scalar_one_or_none():
            continue
        session.add(StoreLocation(qr_code=qr_code, **data))
        created += 1
    await session.commit()
    if created:
        logger.info("Seeded %d store locations", created)
    return created
