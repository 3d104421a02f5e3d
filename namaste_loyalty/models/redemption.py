"""
奖励兑换记录模型

名称、描述在兑换时做快照，之后修改奖励不会影响历史记录。
"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column
from namaste_loyalty.database import Base
from namaste_loyalty.utils.timezone import utc_now_naive


class Redemption(Base):
    """兑换记录表"""
    __tablename__ = "redemptions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id"), index=True
    )
    reward_id: Mapped[str] = mapped_column(String(36), ForeignKey("rewards.id"))
    reward_name: Mapped[str] = mapped_column(String(200))
    reward_name_ja: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    reward_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(32))
    points_cost: Mapped[int] = mapped_column(Integer)
    code: Mapped[str] = mapped_column(String(32), index=True)  # 店员核销展示用
    used: Mapped[bool] = mapped_column(Boolean, default=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_redemptions_user_active", "user_id", "used", "expires_at"),
    )
