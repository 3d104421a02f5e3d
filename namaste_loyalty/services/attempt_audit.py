"""
兑换失败审计

被拒绝或校验失败的兑换尝试都写入 failed_code_attempts，
引擎本身从不读取这张表，仅供后台事后排查。
"""
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.models.failed_code_attempt import FailedCodeAttempt

logger = logging.getLogger(__name__)


def record_failed_attempt(
    db: AsyncSession,
    user_id: Optional[str],
    ip_address: Optional[str],
    code: Optional[str],
    reason: str,
) -> FailedCodeAttempt:
    """
    追加一条失败记录（随调用方的事务一起提交）

    Args:
        db: 数据库会话
        user_id: 用户 ID
        ip_address: 客户端 IP
        code: 用户提交的兑换码
        reason: 失败原因（与返回给调用方的 error_code 一致）
    """
    attempt = FailedCodeAttempt(
        user_id=user_id,
        ip_address=ip_address,
        code=code[:64] if code else None,
        reason=reason,
    )
    db.add(attempt)
    logger.info("Failed code attempt: user=%s ip=%s reason=%s", user_id, ip_address, reason)
    return attempt


async def list_failed_attempts(
    db: AsyncSession,
    user_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[FailedCodeAttempt], int]:
    """后台分页查看失败记录（最新的在前）"""
    query = select(FailedCodeAttempt)
    count_query = select(func.count(FailedCodeAttempt.id))
    if user_id:
        query = query.where(FailedCodeAttempt.user_id == user_id)
        count_query = count_query.where(FailedCodeAttempt.user_id == user_id)
    if ip_address:
        query = query.where(FailedCodeAttempt.ip_address == ip_address)
        count_query = count_query.where(FailedCodeAttempt.ip_address == ip_address)

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(
        query.order_by(FailedCodeAttempt.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total
