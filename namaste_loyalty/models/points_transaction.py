"""
积分流水模型

流水只追加、不修改。每种类型只填写自己的字段：
- delivery_code: code_id, order_type, delivery_partner
- in_store_visit: qr_code, latitude, longitude
- reward_redeem: reward_id, redemption_id
- admin_adjustment: admin_id, note
"""
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional
from sqlalchemy import String, Integer, DateTime, Float, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column
from namaste_loyalty.database import Base
from namaste_loyalty.utils.timezone import utc_now_naive


class TransactionType(str, Enum):
    """流水类型"""
    DELIVERY_CODE = "delivery_code"          # 外卖兑换码
    IN_STORE_VISIT = "in_store_visit"        # 到店签到
    REWARD_REDEEM = "reward_redeem"          # 兑换奖励
    ADMIN_ADJUSTMENT = "admin_adjustment"    # 管理员调整


class PointsTransaction(Base):
    """积分流水表"""
    __tablename__ = "points_transactions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), index=True
    )
    points: Mapped[int] = mapped_column(Integer)  # 正数增加，负数减少
    type: Mapped[str] = mapped_column(String(32), index=True)
    balance_after: Mapped[int] = mapped_column(Integer)  # 交易后余额

    code_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    order_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    delivery_partner: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    qr_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    reward_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    redemption_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    admin_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive, index=True
    )
