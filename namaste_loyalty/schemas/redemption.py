"""
奖励兑换 Schemas
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict

from namaste_loyalty.models.reward import RewardCategory


class RedeemRewardRequest(BaseModel):
    """兑换奖励请求（category 可选，传入时需与奖励定义一致）"""
    category: Optional[RewardCategory] = None


class RedemptionCreated(BaseModel):
    """兑换成功响应"""
    redemption_id: str
    reward_id: str
    reward_name: str
    category: str
    points_cost: int
    code: str
    created_at: datetime
    expires_at: datetime
    current_points: Optional[int] = None


class RedemptionResponse(BaseModel):
    """兑换记录（state / countdown 在读取时计算）"""
    id: str
    reward_id: str
    reward_name: str
    reward_name_ja: Optional[str]
    reward_description: Optional[str]
    category: str
    points_cost: int
    code: str
    used: bool
    used_at: Optional[datetime]
    created_at: datetime
    expires_at: datetime
    state: str
    countdown: Optional[str] = None
    seconds_remaining: int = 0

    model_config = ConfigDict(from_attributes=True)
