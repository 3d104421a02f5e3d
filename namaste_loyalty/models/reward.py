"""
奖励定义模型（由后台维护，积分引擎只读）
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import String, Integer, Boolean, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column
from namaste_loyalty.database import Base
from namaste_loyalty.utils.timezone import utc_now_naive


class RewardCategory(str, Enum):
    """奖励类别"""
    IN_STORE_ITEM = "in_store_item"              # 到店商品
    IN_STORE_DISCOUNT = "in_store_discount"      # 到店折扣
    DIRECT_ORDER_COUPON = "direct_order_coupon"  # 外卖直订优惠券


class Reward(Base):
    """奖励表"""
    __tablename__ = "rewards"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(200))
    name_ja: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description_ja: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    points_cost: Mapped[int] = mapped_column(Integer)
    category: Mapped[str] = mapped_column(String(32), default=RewardCategory.IN_STORE_ITEM.value)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive
    )
