"""
管理后台路由

    - 兑换码：批量生成、查询、作废
    - 积分：手动调整
    - 审查：兑换失败记录、运营告警
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.database import get_db
from namaste_loyalty.models.user import User
from namaste_loyalty.schemas.admin import (
    FailedAttemptInfo,
    FailedAttemptListResponse,
    OperatorAlertInfo,
)
from namaste_loyalty.schemas.codes import (
    DeliveryCodeInfo,
    GenerateCodesRequest,
    GenerateCodesResponse,
)
from namaste_loyalty.schemas.points import AdjustPointsRequest, AdjustPointsResponse
from namaste_loyalty.services import code_admin, ledger
from namaste_loyalty.services.alert_service import list_operator_alerts
from namaste_loyalty.services.attempt_audit import list_failed_attempts
from namaste_loyalty.services.ledger import LedgerOperationError
from namaste_loyalty.utils.security import get_admin_user

from .common import ledger_http_error

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ 兑换码管理 ============


@router.get("/codes", response_model=list[DeliveryCodeInfo])
async def list_delivery_codes(
    batch_id: Optional[str] = Query(None, description="批次ID"),
    is_used: Optional[bool] = Query(None, description="是否已使用"),
    prefix: Optional[str] = Query(None, description="前缀"),
    page: int = Query(1, ge=1, description="页码"),
    page_size: int = Query(50, ge=1, le=200, description="每页数量"),
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
):
    """获取兑换码列表"""
    codes = await code_admin.list_codes(
        db,
        is_used=is_used,
        prefix=prefix,
        batch_id=batch_id,
        page=page,
        page_size=page_size,
    )
    return [DeliveryCodeInfo.model_validate(c) for c in codes]


@router.post("/codes/generate", response_model=GenerateCodesResponse)
async def generate_delivery_codes(
    data: GenerateCodesRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
):
    """
    批量生成兑换码

    每个兑换码末尾带一位校验字符，可直接打印给外卖订单使用。

    Raises:
        HTTPException: 数量超出范围（400）或生成失败（503）
    """
    try:
        batch = await code_admin.generate_codes(
            db,
            count=data.count,
            prefix=data.prefix,
            points_awarded=data.points_awarded,
            expiry_days=data.expiry_days,
            order_type=data.order_type,
            delivery_partner=data.delivery_partner,
        )
    except LedgerOperationError as exc:
        raise ledger_http_error(exc)

    logger.info("Admin %s generated %d delivery codes (batch=%s)",
                admin.email, len(batch.codes), batch.batch_id)
    return GenerateCodesResponse(
        batch_id=batch.batch_id,
        codes=batch.codes,
        count=len(batch.codes),
        points_awarded=batch.points_awarded,
        expires_at=batch.expires_at,
    )


@router.post("/codes/{code}/invalidate", response_model=DeliveryCodeInfo)
async def invalidate_delivery_code(
    code: str,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
):
    """作废未使用的兑换码"""
    try:
        delivery_code = await code_admin.invalidate_code(db, code)
    except LedgerOperationError as exc:
        raise ledger_http_error(exc)
    logger.info("Admin %s invalidated delivery code %s", admin.email, delivery_code.id)
    return DeliveryCodeInfo.model_validate(delivery_code)


# ============ 积分调整 ============


@router.post("/users/{user_id}/points", response_model=AdjustPointsResponse)
async def adjust_user_points(
    user_id: str,
    data: AdjustPointsRequest,
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
):
    """手动调整用户积分（不允许调整为负数）"""
    try:
        balance = await ledger.adjust_points(db, user_id, data.delta, admin.id, data.note)
    except LedgerOperationError as exc:
        raise ledger_http_error(exc)
    return AdjustPointsResponse(user_id=user_id, delta=data.delta, points=balance)


# ============ 审查 ============


@router.get("/failed-attempts", response_model=FailedAttemptListResponse)
async def get_failed_attempts(
    user_id: Optional[str] = Query(None),
    ip_address: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
):
    """查看兑换失败记录"""
    attempts, total = await list_failed_attempts(
        db, user_id=user_id, ip_address=ip_address, page=page, page_size=page_size
    )
    return FailedAttemptListResponse(
        items=[FailedAttemptInfo.model_validate(a) for a in attempts],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/alerts", response_model=list[OperatorAlertInfo])
async def get_operator_alerts(
    alert_type: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(get_admin_user),
    db: AsyncSession = Depends(get_db),
):
    """查看运营告警"""
    alerts = await list_operator_alerts(db, alert_type=alert_type, limit=limit)
    return [OperatorAlertInfo.model_validate(a) for a in alerts]


__all__ = ["router"]
