"""
运营告警服务

全局兑换尝试数越过阈值时写入一条告警记录。
是否重复告警由限流计数器的 alerted 标记控制，这里只负责落库和日志。
"""
import logging
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.config import get_settings
from namaste_loyalty.models.operator_alert import OperatorAlert

logger = logging.getLogger(__name__)
settings = get_settings()


class AlertType(Enum):
    """告警类型枚举"""
    HIGH_REDEMPTION_ATTEMPTS = "high_redemption_attempts"  # 全局兑换尝试过多


def record_rate_limit_alert(
    db: AsyncSession,
    attempt_count: int,
    ip_address: Optional[str] = None,
) -> OperatorAlert:
    """记录全局兑换尝试告警（随调用方的事务一起提交）"""
    threshold = settings.rate_limit_global_alert_threshold
    window_minutes = settings.rate_limit_global_window_seconds // 60
    alert = OperatorAlert(
        alert_type=AlertType.HIGH_REDEMPTION_ATTEMPTS.value,
        severity="warning",
        title="High number of code redemption attempts",
        message=(
            f"{attempt_count} code redemption attempts in the last "
            f"{window_minutes} minutes (threshold {threshold})"
        ),
        current_value=attempt_count,
        threshold_value=threshold,
        extra_data={"last_ip": ip_address, "window_minutes": window_minutes},
    )
    db.add(alert)
    logger.warning(
        "Operator alert: %d redemption attempts in %d minutes",
        attempt_count, window_minutes,
    )
    return alert


async def list_operator_alerts(
    db: AsyncSession,
    alert_type: Optional[str] = None,
    limit: int = 50,
) -> list[OperatorAlert]:
    """查看最近的运营告警"""
    query = select(OperatorAlert)
    if alert_type:
        query = query.where(OperatorAlert.alert_type == alert_type)
    result = await db.execute(query.order_by(OperatorAlert.fired_at.desc()).limit(limit))
    return list(result.scalars().all())
