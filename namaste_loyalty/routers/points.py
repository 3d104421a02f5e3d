"""
积分路由
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.database import get_db
from namaste_loyalty.models.user import User
from namaste_loyalty.schemas.points import PointsBalance, PointsHistoryResponse
from namaste_loyalty.services import points_ledger
from namaste_loyalty.utils.security import get_current_user

router = APIRouter()


@router.get("/balance", response_model=PointsBalance)
async def get_balance(current_user: User = Depends(get_current_user)):
    """获取积分余额"""
    return PointsBalance(points=current_user.points, last_visit_at=current_user.last_visit_at)


@router.get("/history", response_model=PointsHistoryResponse)
async def get_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """获取积分流水"""
    transactions, total = await points_ledger.get_points_history(
        db, current_user.id, page=page, page_size=page_size
    )
    return PointsHistoryResponse(
        transactions=[points_ledger.to_response(t) for t in transactions],
        total=total,
        page=page,
        page_size=page_size,
    )
