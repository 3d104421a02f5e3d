"""
运营告警模型

记录全局兑换尝试数超过阈值等需要人工关注的事件
"""
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, Integer, Text, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from namaste_loyalty.database import Base
from namaste_loyalty.utils.timezone import utc_now_naive


class OperatorAlert(Base):
    """运营告警表"""

    __tablename__ = "operator_alerts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # 告警类型
    alert_type: Mapped[str] = mapped_column(String(64), index=True)
    # alert_type 类型:
    # - high_redemption_attempts: 全局兑换尝试过多

    # 严重级别: info, warning, critical
    severity: Mapped[str] = mapped_column(String(16), default="warning")

    title: Mapped[str] = mapped_column(String(200))
    message: Mapped[str] = mapped_column(Text)

    # 当前值和阈值
    current_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    threshold_value: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # 额外信息
    extra_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    fired_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)

    __table_args__ = (
        Index("idx_operator_alerts_fired_at", "fired_at"),
    )
