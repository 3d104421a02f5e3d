"""
管理后台 Schemas（只读审查）
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict


class FailedAttemptInfo(BaseModel):
    """兑换失败记录"""
    id: str
    user_id: Optional[str]
    ip_address: Optional[str]
    code: Optional[str]
    reason: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OperatorAlertInfo(BaseModel):
    """运营告警"""
    id: str
    alert_type: str
    severity: str
    title: str
    message: str
    current_value: Optional[int]
    threshold_value: Optional[int]
    extra_data: Optional[dict]
    fired_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FailedAttemptListResponse(BaseModel):
    items: List[FailedAttemptInfo]
    total: int
    page: int
    page_size: int
