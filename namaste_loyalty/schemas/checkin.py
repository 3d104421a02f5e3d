"""
到店签到 Schemas
"""
from typing import Optional
from pydantic import BaseModel, Field


class QrCheckInRequest(BaseModel):
    """扫码签到请求"""
    qr_code: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class QrCheckInResponse(BaseModel):
    """扫码签到响应"""
    success: bool
    message: str
    error_code: Optional[str] = None
    distance: Optional[float] = None  # 距门店距离（米），超出范围时返回
    points_added: Optional[int] = None
    current_points: Optional[int] = None
