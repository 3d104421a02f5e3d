"""
积分流水

所有余额变动都必须经过这里追加一条流水，并与余额更新在同一个事务里提交。
流水一旦写入不再修改。
"""
from typing import Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.models.points_transaction import PointsTransaction
from namaste_loyalty.schemas.points import (
    AdminAdjustmentDetail,
    DeliveryCodeDetail,
    InStoreVisitDetail,
    PointsTransactionResponse,
    RewardRedeemDetail,
)

EntryDetail = Union[DeliveryCodeDetail, InStoreVisitDetail, RewardRedeemDetail, AdminAdjustmentDetail]

_DETAIL_TYPES = {
    "delivery_code": DeliveryCodeDetail,
    "in_store_visit": InStoreVisitDetail,
    "reward_redeem": RewardRedeemDetail,
    "admin_adjustment": AdminAdjustmentDetail,
}


def append_entry(
    db: AsyncSession,
    user_id: str,
    points: int,
    balance_after: int,
    detail: EntryDetail,
) -> PointsTransaction:
    """
    追加一条积分流水

    Args:
        db: 数据库会话（与余额更新共用）
        user_id: 用户 ID
        points: 积分变动（正数增加，负数减少）
        balance_after: 变动后的余额
        detail: 类型专属字段

    Returns:
        新建的流水对象
    """
    entry = PointsTransaction(
        user_id=user_id,
        points=points,
        type=detail.type,
        balance_after=balance_after,
        **detail.model_dump(exclude={"type"}),
    )
    db.add(entry)
    return entry


def entry_detail(entry: PointsTransaction) -> EntryDetail:
    """从流水行还原类型专属字段"""
    detail_type = _DETAIL_TYPES[entry.type]
    fields = {
        name: getattr(entry, name)
        for name in detail_type.model_fields
        if name != "type"
    }
    return detail_type(**fields)


def to_response(entry: PointsTransaction) -> PointsTransactionResponse:
    return PointsTransactionResponse(
        id=entry.id,
        points=entry.points,
        type=entry.type,
        balance_after=entry.balance_after,
        created_at=entry.created_at,
        detail=entry_detail(entry),
    )


async def get_points_history(
    db: AsyncSession,
    user_id: str,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[PointsTransaction], int]:
    """分页获取用户积分流水（最新的在前）"""
    count_result = await db.execute(
        select(func.count(PointsTransaction.id)).where(
            PointsTransaction.user_id == user_id
        )
    )
    total = count_result.scalar() or 0

    offset = (page - 1) * page_size
    result = await db.execute(
        select(PointsTransaction)
        .where(PointsTransaction.user_id == user_id)
        .order_by(PointsTransaction.created_at.desc())
        .offset(offset)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def ledger_sum(db: AsyncSession, user_id: str) -> int:
    """用户全部流水之和（应等于当前余额）"""
    result = await db.execute(
        select(func.coalesce(func.sum(PointsTransaction.points), 0)).where(
            PointsTransaction.user_id == user_id
        )
    )
    return int(result.scalar() or 0)
