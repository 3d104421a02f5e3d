"""
兑换引擎 - 兑换码、到店签到、奖励兑换的原子积分变更

此服务提供：
1. 外卖兑换码兑换（限流 -> 校验位 -> 事务内核销并加积分）
2. 到店扫码签到（地理围栏 + 22 小时去重）
3. 积分兑换奖励（扣积分 + 生成兑换记录）
4. 兑换记录核销与查询
5. 管理员积分调整

每个操作的余额变更、记录变更和积分流水在同一个会话事务中提交，
要么全部成功要么全部回滚。并发安全依赖条件更新
（UPDATE ... WHERE ... RETURNING）：过期的读取无法让第二个请求成功。

预期内的业务失败（兑换码无效、已使用、积分不足等）以结果对象返回；
奖励兑换和核销失败抛出 LedgerOperationError；数据库异常直接向上抛出。
"""
import logging
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.config import get_settings
from namaste_loyalty.models.delivery_code import DeliveryCode
from namaste_loyalty.models.redemption import Redemption
from namaste_loyalty.models.reward import Reward
from namaste_loyalty.models.store_location import StoreLocation
from namaste_loyalty.models.user import User
from namaste_loyalty.schemas.points import (
    AdminAdjustmentDetail,
    DeliveryCodeDetail,
    InStoreVisitDetail,
    RewardRedeemDetail,
)
from namaste_loyalty.services import points_ledger
from namaste_loyalty.services.alert_service import record_rate_limit_alert
from namaste_loyalty.services.attempt_audit import record_failed_attempt
from namaste_loyalty.services.rate_limit import RateLimiter
from namaste_loyalty.services.redemption_lifecycle import expires_at_for
from namaste_loyalty.utils.checksum import verify_checksum
from namaste_loyalty.utils.geo import distance_meters
from namaste_loyalty.utils.metrics import CODE_REDEMPTIONS, QR_CHECKINS, REWARD_REDEMPTIONS
from namaste_loyalty.utils.timezone import utc_now_naive

logger = logging.getLogger(__name__)
settings = get_settings()

MESSAGES = {
    "RATE_LIMITED": "Too many attempts. Please try again later.",
    "MISSING_CODE": "No code provided",
    "INVALID_FORMAT": "Invalid code format",
    "INVALID_CODE": "Invalid code",
    "ALREADY_USED": "Code already used",
    "EXPIRED": "Code has expired",
    "USER_NOT_FOUND": "User not found",
    "MISSING_QR_CODE": "QR code is required",
    "MISSING_LOCATION": "Location data required",
    "INVALID_QR_CODE": "Invalid QR code",
    "OUT_OF_RANGE": "You must be at the restaurant to check in",
    "ALREADY_CHECKED_IN": "You have already checked in today. Please come back tomorrow!",
    "REWARD_NOT_FOUND": "Reward not found",
    "CATEGORY_MISMATCH": "Reward category does not match",
    "INSUFFICIENT_POINTS": "Insufficient points",
    "REDEMPTION_NOT_FOUND": "Redemption not found",
    "ALREADY_USED_OR_EXPIRED": "Redemption already used or expired",
    "INVALID_AMOUNT": "Adjustment must not be zero",
    "NEGATIVE_BALANCE": "Adjustment would make the balance negative",
}

REDEMPTION_CODE_PREFIX = "RDEM"
REDEMPTION_CODE_ALPHABET = string.ascii_uppercase + string.digits


class LedgerOperationError(Exception):
    """积分操作异常"""
    def __init__(self, error_code: str, message: Optional[str] = None):
        self.error_code = error_code
        self.message = message or MESSAGES.get(error_code, error_code)
        super().__init__(self.message)


@dataclass
class CodeRedemptionResult:
    """兑换码兑换结果"""
    success: bool
    message: str
    error_code: Optional[str] = None
    rate_limited: bool = False
    points_added: Optional[int] = None
    current_points: Optional[int] = None

    @classmethod
    def failure(cls, error_code: str, rate_limited: bool = False) -> "CodeRedemptionResult":
        return cls(
            success=False,
            message=MESSAGES[error_code],
            error_code=error_code,
            rate_limited=rate_limited,
        )


@dataclass
class CheckInResult:
    """到店签到结果"""
    success: bool
    message: str
    error_code: Optional[str] = None
    distance: Optional[float] = None
    points_added: Optional[int] = None
    current_points: Optional[int] = None

    @classmethod
    def failure(cls, error_code: str, distance: Optional[float] = None) -> "CheckInResult":
        return cls(
            success=False,
            message=MESSAGES[error_code],
            error_code=error_code,
            distance=distance,
        )


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def generate_redemption_code() -> str:
    """生成店员核销展示用的兑换码，如 RDEM-7K2Q9A"""
    body = "".join(secrets.choice(REDEMPTION_CODE_ALPHABET) for _ in range(6))
    return f"{REDEMPTION_CODE_PREFIX}-{body}"


async def _fail_code_attempt(
    db: AsyncSession,
    error_code: str,
    user_id: str,
    ip_address: Optional[str],
    code: Optional[str],
    rate_limited: bool = False,
) -> CodeRedemptionResult:
    """写入失败审计并提交，返回失败结果"""
    record_failed_attempt(db, user_id, ip_address, code, error_code)
    await db.commit()
    CODE_REDEMPTIONS.labels(error_code.lower()).inc()
    return CodeRedemptionResult.failure(error_code, rate_limited=rate_limited)


async def redeem_delivery_code(
    db: AsyncSession,
    code: Optional[str],
    user_id: str,
    ip_address: Optional[str],
    limiter: RateLimiter,
) -> CodeRedemptionResult:
    """
    外卖兑换码兑换积分

    Args:
        db: 数据库会话
        code: 用户输入的完整兑换码（含校验位）
        user_id: 用户 ID
        ip_address: 客户端 IP（未知时为 None）
        limiter: 限流器

    Returns:
        兑换结果；同一兑换码并发兑换时至多一个请求成功
    """
    decision = await limiter.check_and_record_attempt(user_id, ip_address)
    if decision.global_alert:
        record_rate_limit_alert(db, decision.global_count, ip_address)
        await db.commit()
    if not decision.allowed:
        return await _fail_code_attempt(
            db, "RATE_LIMITED", user_id, ip_address, code, rate_limited=True
        )

    normalized = normalize_code(code)
    if not normalized:
        CODE_REDEMPTIONS.labels("missing_code").inc()
        return CodeRedemptionResult.failure("MISSING_CODE")
    if not verify_checksum(normalized):
        return await _fail_code_attempt(db, "INVALID_FORMAT", user_id, ip_address, normalized)

    result = await db.execute(
        select(DeliveryCode)
        .where(DeliveryCode.code == normalized)
        .with_for_update()
    )
    delivery_code = result.scalar_one_or_none()

    if not delivery_code:
        return await _fail_code_attempt(db, "INVALID_CODE", user_id, ip_address, normalized)

    if delivery_code.is_used:
        return await _fail_code_attempt(db, "ALREADY_USED", user_id, ip_address, normalized)

    now = utc_now_naive()
    if now > delivery_code.expires_at:
        return await _fail_code_attempt(db, "EXPIRED", user_id, ip_address, normalized)

    user_result = await db.execute(
        select(User.id).where(User.id == user_id).with_for_update()
    )
    if user_result.scalar_one_or_none() is None:
        # 系统数据不一致而非攻击行为，不写失败审计；事务由 get_db 回滚
        logger.error("Delivery code redeem for missing user %s", user_id)
        CODE_REDEMPTIONS.labels("user_not_found").inc()
        return CodeRedemptionResult.failure("USER_NOT_FOUND")

    # 条件核销：另一个请求已先提交时这里不会命中任何行
    marked = await db.execute(
        update(DeliveryCode)
        .where(
            DeliveryCode.id == delivery_code.id,
            DeliveryCode.is_used.is_(False),
            DeliveryCode.expires_at >= now,
        )
        .values(is_used=True, used_by=user_id, used_at=now)
        .returning(DeliveryCode.id)
    )
    if marked.scalar_one_or_none() is None:
        return await _fail_code_attempt(db, "ALREADY_USED", user_id, ip_address, normalized)

    points_added = delivery_code.points_awarded or settings.default_code_points
    credited = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(points=User.points + points_added, last_visit_at=now)
        .returning(User.points)
    )
    balance_after = credited.scalar_one()

    points_ledger.append_entry(
        db,
        user_id=user_id,
        points=points_added,
        balance_after=balance_after,
        detail=DeliveryCodeDetail(
            code_id=delivery_code.id,
            order_type=delivery_code.order_type,
            delivery_partner=delivery_code.delivery_partner,
        ),
    )
    await db.commit()

    CODE_REDEMPTIONS.labels("success").inc()
    logger.info(
        "User %s redeemed delivery code %s**** (+%d, balance=%d)",
        user_id, normalized[:8], points_added, balance_after,
    )
    return CodeRedemptionResult(
        success=True,
        message="Code redeemed successfully!",
        points_added=points_added,
        current_points=balance_after,
    )


async def check_in_by_qr(
    db: AsyncSession,
    qr_code: Optional[str],
    latitude: Optional[float],
    longitude: Optional[float],
    user_id: str,
) -> CheckInResult:
    """
    到店扫码签到

    Args:
        db: 数据库会话
        qr_code: 门店二维码标识
        latitude: 用户纬度
        longitude: 用户经度
        user_id: 用户 ID

    Returns:
        签到结果；超出范围时带上距离（米）供前端提示
    """
    if not qr_code:
        QR_CHECKINS.labels("missing_qr_code").inc()
        return CheckInResult.failure("MISSING_QR_CODE")
    if latitude is None or longitude is None:
        QR_CHECKINS.labels("missing_location").inc()
        return CheckInResult.failure("MISSING_LOCATION")

    location = await db.get(StoreLocation, qr_code)
    if location is None or not location.active:
        QR_CHECKINS.labels("invalid_qr_code").inc()
        return CheckInResult.failure("INVALID_QR_CODE")

    distance = distance_meters(latitude, longitude, location.latitude, location.longitude)
    if distance > settings.checkin_radius_meters:
        QR_CHECKINS.labels("out_of_range").inc()
        return CheckInResult.failure("OUT_OF_RANGE", distance=round(distance))

    # 直接读列而不是 db.get：会话缓存的 User 不反映本会话里批量 UPDATE 写入的签到标记
    marker = (
        await db.execute(
            select(User.last_qr_checkin_code, User.last_qr_checkin_at).where(User.id == user_id)
        )
    ).one_or_none()
    if marker is None:
        QR_CHECKINS.labels("user_not_found").inc()
        return CheckInResult.failure("USER_NOT_FOUND")

    # 事务外的快速去重；极少数并发重复签到最多多加 1 分
    now = utc_now_naive()
    last_code, last_at = marker
    if (
        last_code == qr_code
        and last_at is not None
        and now - last_at < timedelta(hours=settings.checkin_dedup_hours)
    ):
        QR_CHECKINS.labels("already_checked_in").inc()
        return CheckInResult.failure("ALREADY_CHECKED_IN")

    points_added = settings.checkin_points
    credited = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            points=User.points + points_added,
            last_qr_checkin_code=qr_code,
            last_qr_checkin_at=now,
            last_visit_at=now,
        )
        .returning(User.points)
    )
    balance_after = credited.scalar_one()

    points_ledger.append_entry(
        db,
        user_id=user_id,
        points=points_added,
        balance_after=balance_after,
        detail=InStoreVisitDetail(qr_code=qr_code, latitude=latitude, longitude=longitude),
    )
    await db.commit()

    QR_CHECKINS.labels("success").inc()
    logger.info("User %s checked in at %s (%.0fm)", user_id, qr_code, distance)
    return CheckInResult(
        success=True,
        message=f"Check-in successful! {points_added} point added to your account.",
        points_added=points_added,
        current_points=balance_after,
    )


async def redeem_reward(
    db: AsyncSession,
    user_id: str,
    reward_id: str,
    category: Optional[str] = None,
) -> Redemption:
    """
    使用积分兑换奖励

    Args:
        db: 数据库会话
        user_id: 用户 ID
        reward_id: 奖励 ID
        category: 调用方认为的奖励类别（可选，传入时必须与奖励定义一致）

    Returns:
        新建的兑换记录

    Raises:
        LedgerOperationError: 奖励不存在、类别不符、用户不存在或积分不足
    """
    reward = await db.get(Reward, reward_id)
    if reward is None or not reward.active:
        raise LedgerOperationError("REWARD_NOT_FOUND")
    if category is not None and category != reward.category:
        raise LedgerOperationError("CATEGORY_MISMATCH")

    available = await get_balance(db, user_id)
    if available is None:
        raise LedgerOperationError("USER_NOT_FOUND")
    if available < reward.points_cost:
        raise LedgerOperationError(
            "INSUFFICIENT_POINTS",
            f"Insufficient points: {reward.points_cost} required, {available} available",
        )

    # 条件扣减：并发消费导致余额不足时不命中任何行，余额不会变成负数
    debited = await db.execute(
        update(User)
        .where(User.id == user_id, User.points >= reward.points_cost)
        .values(points=User.points - reward.points_cost)
        .returning(User.points)
    )
    balance_after = debited.scalar_one_or_none()
    if balance_after is None:
        # 不在这里 rollback：回滚会让调用方持有的 ORM 对象全部过期
        raise LedgerOperationError("INSUFFICIENT_POINTS")

    now = utc_now_naive()
    redemption = Redemption(
        id=str(uuid.uuid4()),
        user_id=user_id,
        reward_id=reward.id,
        reward_name=reward.name,
        reward_name_ja=reward.name_ja,
        reward_description=reward.description,
        category=reward.category,
        points_cost=reward.points_cost,
        code=generate_redemption_code(),
        used=False,
        created_at=now,
        expires_at=expires_at_for(reward.category, now),
    )
    db.add(redemption)
    points_ledger.append_entry(
        db,
        user_id=user_id,
        points=-reward.points_cost,
        balance_after=balance_after,
        detail=RewardRedeemDetail(reward_id=reward.id, redemption_id=redemption.id),
    )
    await db.commit()

    REWARD_REDEMPTIONS.labels(reward.category).inc()
    logger.info(
        "User %s redeemed reward %s (-%d, balance=%d, expires=%s)",
        user_id, reward.id, reward.points_cost, balance_after, redemption.expires_at.isoformat(),
    )
    return redemption


async def mark_redemption_used(
    db: AsyncSession,
    redemption_id: str,
    user_id: Optional[str] = None,
) -> Redemption:
    """
    核销兑换记录（active -> used）

    Args:
        db: 数据库会话
        redemption_id: 兑换记录 ID
        user_id: 限定所属用户（管理员核销时为 None）

    Raises:
        LedgerOperationError: 记录不存在，或已使用 / 已过期
    """
    now = utc_now_naive()
    conditions = [
        Redemption.id == redemption_id,
        Redemption.used.is_(False),
        Redemption.expires_at > now,
    ]
    if user_id is not None:
        conditions.append(Redemption.user_id == user_id)

    result = await db.execute(
        update(Redemption)
        .where(*conditions)
        .values(used=True, used_at=now)
        .returning(Redemption.id)
    )
    if result.scalar_one_or_none() is None:
        redemption = await db.get(Redemption, redemption_id)
        if redemption is None or (user_id is not None and redemption.user_id != user_id):
            raise LedgerOperationError("REDEMPTION_NOT_FOUND")
        raise LedgerOperationError("ALREADY_USED_OR_EXPIRED")

    await db.commit()
    redemption = await db.get(Redemption, redemption_id, populate_existing=True)
    logger.info("Redemption %s marked used", redemption_id)
    return redemption


async def get_redemption(
    db: AsyncSession,
    redemption_id: str,
) -> Optional[Redemption]:
    return await db.get(Redemption, redemption_id)


async def get_active_redemptions(
    db: AsyncSession,
    user_id: str,
    now: Optional[datetime] = None,
) -> list[Redemption]:
    """未使用且未过期的兑换记录（最新的在前），只读"""
    now = now or utc_now_naive()
    result = await db.execute(
        select(Redemption)
        .where(
            Redemption.user_id == user_id,
            Redemption.used.is_(False),
            Redemption.expires_at > now,
        )
        .order_by(Redemption.created_at.desc())
    )
    return list(result.scalars().all())


async def get_redemption_history(
    db: AsyncSession,
    user_id: str,
    limit: int = 50,
) -> list[Redemption]:
    """全部兑换记录（最新的在前）"""
    result = await db.execute(
        select(Redemption)
        .where(Redemption.user_id == user_id)
        .order_by(Redemption.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_balance(db: AsyncSession, user_id: str) -> Optional[int]:
    result = await db.execute(select(User.points).where(User.id == user_id))
    return result.scalar_one_or_none()


async def adjust_points(
    db: AsyncSession,
    user_id: str,
    delta: int,
    admin_id: str,
    note: Optional[str] = None,
) -> int:
    """
    管理员调整积分

    Returns:
        调整后的余额

    Raises:
        LedgerOperationError: delta 为 0、用户不存在或调整后为负数
    """
    if delta == 0:
        raise LedgerOperationError("INVALID_AMOUNT")

    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.points + delta >= 0)
        .values(points=User.points + delta)
        .returning(User.points)
    )
    balance_after = result.scalar_one_or_none()
    if balance_after is None:
        if await get_balance(db, user_id) is None:
            raise LedgerOperationError("USER_NOT_FOUND")
        raise LedgerOperationError("NEGATIVE_BALANCE")

    points_ledger.append_entry(
        db,
        user_id=user_id,
        points=delta,
        balance_after=balance_after,
        detail=AdminAdjustmentDetail(admin_id=admin_id, note=note),
    )
    await db.commit()
    logger.info("Admin %s adjusted points of %s by %+d (balance=%d)", admin_id, user_id, delta, balance_after)
    return balance_after
