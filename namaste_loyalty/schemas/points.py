"""
积分相关 Schemas

流水的类型专属字段用带判别字段的联合类型表示，
每种流水只携带与自己相关的数据。
"""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field


class DeliveryCodeDetail(BaseModel):
    """外卖兑换码积分"""
    type: Literal["delivery_code"] = "delivery_code"
    code_id: str
    order_type: Optional[str] = None
    delivery_partner: Optional[str] = None


class InStoreVisitDetail(BaseModel):
    """到店签到积分"""
    type: Literal["in_store_visit"] = "in_store_visit"
    qr_code: str
    latitude: float
    longitude: float


class RewardRedeemDetail(BaseModel):
    """兑换奖励扣除"""
    type: Literal["reward_redeem"] = "reward_redeem"
    reward_id: str
    redemption_id: str


class AdminAdjustmentDetail(BaseModel):
    """管理员调整"""
    type: Literal["admin_adjustment"] = "admin_adjustment"
    admin_id: str
    note: Optional[str] = None


LedgerDetail = Annotated[
    Union[DeliveryCodeDetail, InStoreVisitDetail, RewardRedeemDetail, AdminAdjustmentDetail],
    Field(discriminator="type"),
]


class PointsBalance(BaseModel):
    """积分余额"""
    points: int
    last_visit_at: Optional[datetime] = None


class PointsTransactionResponse(BaseModel):
    """积分流水响应"""
    id: str
    points: int
    type: str
    balance_after: int
    created_at: datetime
    detail: LedgerDetail


class PointsHistoryResponse(BaseModel):
    """积分流水列表响应"""
    transactions: List[PointsTransactionResponse]
    total: int
    page: int
    page_size: int


class AdjustPointsRequest(BaseModel):
    """管理员调整积分请求"""
    delta: int = Field(..., description="正数增加，负数扣除")
    note: Optional[str] = Field(None, max_length=500)


class AdjustPointsResponse(BaseModel):
    """管理员调整积分响应"""
    user_id: str
    delta: int
    points: int

    model_config = ConfigDict(from_attributes=True)
