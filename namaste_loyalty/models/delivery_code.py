"""
外卖兑换码模型

code 保存用户看到的完整字符串（末位即校验字符），不单独存校验位。
"""
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from namaste_loyalty.database import Base
from namaste_loyalty.utils.timezone import utc_now_naive


class DeliveryCode(Base):
    """外卖兑换码表"""
    __tablename__ = "delivery_codes"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    points_awarded: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 为空时按默认值
    is_used: Mapped[bool] = mapped_column(Boolean, default=False)
    used_by: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("users.id"), nullable=True
    )
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime)
    order_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    delivery_partner: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    batch_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)  # 批次ID
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utc_now_naive
    )
