"""
兑换码相关 Schemas
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class RedeemCodeRequest(BaseModel):
    """兑换码兑换请求"""
    code: str


class RedeemCodeResponse(BaseModel):
    """兑换结果响应"""
    success: bool
    message: str
    error_code: Optional[str] = None
    rate_limited: bool = False
    points_added: Optional[int] = None
    current_points: Optional[int] = None


class DeliveryCodeInfo(BaseModel):
    """兑换码信息"""
    id: str
    code: str
    points_awarded: Optional[int]
    is_used: bool
    used_by: Optional[str]
    used_at: Optional[datetime]
    expires_at: datetime
    order_type: Optional[str]
    delivery_partner: Optional[str]
    batch_id: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class GenerateCodesRequest(BaseModel):
    """批量生成兑换码请求"""
    count: int = Field(10, ge=1)
    prefix: Optional[str] = Field(None, max_length=32, pattern=r"^[A-Za-z0-9]+$")
    points_awarded: Optional[int] = Field(None, ge=1)
    expiry_days: Optional[int] = Field(None, ge=1)
    order_type: Optional[str] = Field(None, max_length=32)
    delivery_partner: Optional[str] = Field(None, max_length=64)


class GenerateCodesResponse(BaseModel):
    """批量生成兑换码响应"""
    batch_id: str
    codes: List[str]
    count: int
    points_awarded: int
    expires_at: datetime
