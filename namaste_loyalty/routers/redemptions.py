"""
兑换记录路由
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.database import get_db
from namaste_loyalty.models.redemption import Redemption
from namaste_loyalty.models.user import User
from namaste_loyalty.schemas.redemption import RedemptionResponse
from namaste_loyalty.services import ledger, redemption_lifecycle
from namaste_loyalty.services.ledger import LedgerOperationError
from namaste_loyalty.utils.security import get_current_user
from namaste_loyalty.utils.timezone import utc_now_naive

from .common import ledger_http_error

router = APIRouter()


def to_response(redemption: Redemption, now: Optional[datetime] = None) -> RedemptionResponse:
    """附带读取时计算的状态和倒计时"""
    now = now or utc_now_naive()
    return RedemptionResponse(
        id=redemption.id,
        reward_id=redemption.reward_id,
        reward_name=redemption.reward_name,
        reward_name_ja=redemption.reward_name_ja,
        reward_description=redemption.reward_description,
        category=redemption.category,
        points_cost=redemption.points_cost,
        code=redemption.code,
        used=redemption.used,
        used_at=redemption.used_at,
        created_at=redemption.created_at,
        expires_at=redemption.expires_at,
        state=redemption_lifecycle.redemption_state(redemption, now).value,
        countdown=redemption_lifecycle.countdown(redemption, now),
        seconds_remaining=redemption_lifecycle.seconds_remaining(redemption, now),
    )


@router.get("/active", response_model=list[RedemptionResponse])
async def list_active_redemptions(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """获取未使用且未过期的兑换记录"""
    now = utc_now_naive()
    redemptions = await ledger.get_active_redemptions(db, current_user.id, now=now)
    return [to_response(r, now) for r in redemptions]


@router.get("/history", response_model=list[RedemptionResponse])
async def list_redemption_history(
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """获取全部兑换记录"""
    redemptions = await ledger.get_redemption_history(db, current_user.id, limit=limit)
    now = utc_now_naive()
    return [to_response(r, now) for r in redemptions]


@router.get("/{redemption_id}", response_model=RedemptionResponse)
async def get_redemption(
    redemption_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """获取单条兑换记录（管理员可查看任意用户）"""
    redemption = await ledger.get_redemption(db, redemption_id)
    if redemption is None or (
        redemption.user_id != current_user.id and not current_user.is_admin
    ):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Redemption not found",
        )
    return to_response(redemption)


@router.post("/{redemption_id}/use", response_model=RedemptionResponse)
async def use_redemption(
    redemption_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    核销兑换记录

    普通用户只能核销自己的记录，管理员可核销任意记录。
    已使用或已过期时返回 409。
    """
    owner_id = None if current_user.is_admin else current_user.id
    try:
        redemption = await ledger.mark_redemption_used(db, redemption_id, user_id=owner_id)
    except LedgerOperationError as exc:
        raise ledger_http_error(exc)
    return to_response(redemption)
