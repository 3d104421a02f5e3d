"""
兑换码后台管理 - 批量生成、查询、作废

生成的兑换码格式为 ``<前缀>-<8 位十六进制大写><校验位>``，
例如 ``NAMASTE-1A2B3C4DK``。
"""
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.config import get_settings
from namaste_loyalty.models.delivery_code import DeliveryCode
from namaste_loyalty.services.ledger import LedgerOperationError, normalize_code
from namaste_loyalty.utils.checksum import append_checksum
from namaste_loyalty.utils.timezone import utc_now_naive

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class GeneratedBatch:
    """一次批量生成的结果"""
    batch_id: str
    codes: list[str]
    points_awarded: int
    expires_at: datetime


def generate_code_candidate(prefix: str) -> str:
    """生成一个带校验位的兑换码"""
    body = secrets.token_hex(4).upper()
    return append_checksum(f"{prefix}-{body}")


async def generate_codes(
    db: AsyncSession,
    count: int,
    prefix: Optional[str] = None,
    points_awarded: Optional[int] = None,
    expiry_days: Optional[int] = None,
    order_type: Optional[str] = None,
    delivery_partner: Optional[str] = None,
) -> GeneratedBatch:
    """
    批量生成兑换码

    Args:
        db: 数据库会话
        count: 数量（1 ~ max_codes_per_batch）
        prefix: 前缀，默认 NAMASTE
        points_awarded: 每个兑换码奖励的积分，默认 5
        expiry_days: 有效期天数，默认 60

    Returns:
        批次 ID 和生成的完整兑换码列表

    Raises:
        LedgerOperationError: 数量超出范围或无法生成足够的唯一兑换码
    """
    if count < 1 or count > settings.max_codes_per_batch:
        raise LedgerOperationError(
            "INVALID_COUNT",
            f"Count must be between 1 and {settings.max_codes_per_batch}",
        )

    prefix = (prefix or settings.default_code_prefix).strip().upper()
    points_awarded = points_awarded or settings.default_code_points
    expiry_days = expiry_days or settings.default_code_expiry_days
    batch_id = str(uuid.uuid4())
    expires_at = utc_now_naive() + timedelta(days=expiry_days)

    codes: list[str] = []
    seen_codes: set[str] = set()
    attempts = 0
    max_attempts = max(1000, count * 10)

    while len(codes) < count and attempts < max_attempts:
        remaining = count - len(codes)
        candidate_codes: set[str] = set()

        while len(candidate_codes) < remaining and attempts < max_attempts:
            new_code = generate_code_candidate(prefix)
            attempts += 1
            if new_code in seen_codes:
                continue
            candidate_codes.add(new_code)
            seen_codes.add(new_code)

        if not candidate_codes:
            break

        # 去掉已存在于库中的兑换码
        existing = await db.execute(
            select(DeliveryCode.code).where(DeliveryCode.code.in_(candidate_codes))
        )
        candidate_codes -= set(existing.scalars().all())

        db.add_all([
            DeliveryCode(
                code=code_value,
                points_awarded=points_awarded,
                expires_at=expires_at,
                order_type=order_type,
                delivery_partner=delivery_partner,
                batch_id=batch_id,
            )
            for code_value in candidate_codes
        ])
        codes.extend(sorted(candidate_codes))

    if len(codes) < count:
        await db.rollback()
        raise LedgerOperationError("GENERATION_FAILED", "Failed to generate unique codes")

    await db.commit()
    logger.info("Generated %d delivery codes (batch=%s, prefix=%s)", count, batch_id, prefix)

    return GeneratedBatch(
        batch_id=batch_id,
        codes=codes,
        points_awarded=points_awarded,
        expires_at=expires_at,
    )


async def list_codes(
    db: AsyncSession,
    is_used: Optional[bool] = None,
    prefix: Optional[str] = None,
    batch_id: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> list[DeliveryCode]:
    """分页查询兑换码"""
    query = select(DeliveryCode)

    if batch_id:
        query = query.where(DeliveryCode.batch_id == batch_id)
    if is_used is not None:
        query = query.where(DeliveryCode.is_used.is_(is_used))
    if prefix:
        query = query.where(DeliveryCode.code.startswith(f"{prefix.strip().upper()}-"))

    query = query.order_by(DeliveryCode.created_at.desc())
    query = query.offset((page - 1) * page_size).limit(page_size)

    result = await db.execute(query)
    return list(result.scalars().all())


async def invalidate_code(db: AsyncSession, code: str) -> DeliveryCode:
    """
    作废未使用的兑换码（过期时间提前到当前时间之前）

    Raises:
        LedgerOperationError: 兑换码不存在或已被使用
    """
    normalized = normalize_code(code)
    expired_at = utc_now_naive() - timedelta(seconds=1)
    result = await db.execute(
        update(DeliveryCode)
        .where(DeliveryCode.code == normalized, DeliveryCode.is_used.is_(False))
        .values(expires_at=expired_at)
        .returning(DeliveryCode.id)
    )
    code_id = result.scalar_one_or_none()
    if code_id is None:
        existing = await db.execute(
            select(DeliveryCode.id).where(DeliveryCode.code == normalized)
        )
        if existing.scalar_one_or_none() is None:
            raise LedgerOperationError("INVALID_CODE")
        raise LedgerOperationError("ALREADY_USED")

    await db.commit()
    logger.info("Delivery code %s**** invalidated", normalized[:8])
    return await db.get(DeliveryCode, code_id, populate_existing=True)
