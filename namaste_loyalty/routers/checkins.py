"""
到店签到路由
"""
from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.database import get_db
from namaste_loyalty.models.user import User
from namaste_loyalty.schemas.checkin import QrCheckInRequest, QrCheckInResponse
from namaste_loyalty.services import ledger
from namaste_loyalty.utils.security import get_current_user

router = APIRouter()


@router.post("/qr", response_model=QrCheckInResponse)
async def check_in_by_qr(
    data: QrCheckInRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """扫描门店二维码签到（需在门店 100 米范围内，22 小时内同一门店只能签到一次）"""
    result = await ledger.check_in_by_qr(
        db,
        qr_code=data.qr_code,
        latitude=data.latitude,
        longitude=data.longitude,
        user_id=current_user.id,
    )
    return QrCheckInResponse(**asdict(result))
