"""
奖励兑换路由
"""
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.database import get_db
from namaste_loyalty.models.user import User
from namaste_loyalty.schemas.redemption import RedeemRewardRequest, RedemptionCreated
from namaste_loyalty.services import ledger
from namaste_loyalty.services.ledger import LedgerOperationError
from namaste_loyalty.utils.security import get_current_user

from .common import ledger_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{reward_id}/redeem", response_model=RedemptionCreated, status_code=201)
async def redeem_reward(
    reward_id: str,
    data: Optional[RedeemRewardRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    使用积分兑换奖励

    到店类奖励 15 分钟内有效，外卖优惠券 30 天内有效。

    Raises:
        HTTPException: 奖励不存在（404）、类别不符（400）、积分不足（402）
    """
    category = data.category.value if data and data.category else None
    user_id = current_user.id
    try:
        redemption = await ledger.redeem_reward(db, user_id, reward_id, category)
    except LedgerOperationError as exc:
        logger.info("Reward redeem rejected for user %s: %s", user_id, exc.error_code)
        raise ledger_http_error(exc)

    return RedemptionCreated(
        redemption_id=redemption.id,
        reward_id=redemption.reward_id,
        reward_name=redemption.reward_name,
        category=redemption.category,
        points_cost=redemption.points_cost,
        code=redemption.code,
        created_at=redemption.created_at,
        expires_at=redemption.expires_at,
        current_points=await ledger.get_balance(db, user_id),
    )
