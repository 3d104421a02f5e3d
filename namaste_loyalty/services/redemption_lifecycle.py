"""
奖励兑换记录的状态推导

状态不落库，每次读取时根据 used / expires_at 和当前时间计算：
- active: 未使用且未过期
- used: 已使用（终态）
- expired: 未使用且已过期（终态）
唯一的外部状态转换是 active -> used（核销）。
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from namaste_loyalty.config import get_settings
from namaste_loyalty.models.redemption import Redemption
from namaste_loyalty.models.reward import RewardCategory

settings = get_settings()

IN_STORE_CATEGORIES = frozenset({
    RewardCategory.IN_STORE_ITEM.value,
    RewardCategory.IN_STORE_DISCOUNT.value,
})


class RedemptionState(str, Enum):
    ACTIVE = "active"
    USED = "used"
    EXPIRED = "expired"


def validity_window(category: Union[str, RewardCategory]) -> timedelta:
    """到店类 15 分钟，外卖优惠券 30 天"""
    value = category.value if isinstance(category, RewardCategory) else category
    if value in IN_STORE_CATEGORIES:
        return timedelta(minutes=settings.in_store_redemption_minutes)
    if value == RewardCategory.DIRECT_ORDER_COUPON.value:
        return timedelta(days=settings.delivery_coupon_redemption_days)
    raise ValueError(f"Unknown reward category: {value}")


def expires_at_for(category: Union[str, RewardCategory], created_at: datetime) -> datetime:
    return created_at + validity_window(category)


def redemption_state(redemption: Redemption, now: datetime) -> RedemptionState:
    if redemption.used:
        return RedemptionState.USED
    if now >= redemption.expires_at:
        return RedemptionState.EXPIRED
    return RedemptionState.ACTIVE


def is_active(redemption: Redemption, now: datetime) -> bool:
    return redemption_state(redemption, now) is RedemptionState.ACTIVE


def can_mark_used(redemption: Redemption, now: datetime) -> bool:
    """只有 active 状态允许核销"""
    return is_active(redemption, now)


def seconds_remaining(redemption: Redemption, now: datetime) -> int:
    if not is_active(redemption, now):
        return 0
    return max(0, int((redemption.expires_at - now).total_seconds()))


def countdown(redemption: Redemption, now: datetime) -> Optional[str]:
    """
    剩余时间字符串 ``分:秒``（秒补零），非 active 时返回 None

    外卖优惠券的有效期以天计，分钟数会超过 60，这里不做换算。
    """
    if not is_active(redemption, now):
        return None
    minutes, seconds = divmod(seconds_remaining(redemption, now), 60)
    return f"{minutes}:{seconds:02d}"
