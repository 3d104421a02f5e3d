"""
路由公共工具
"""
from fastapi import HTTPException, status

from namaste_loyalty.services.ledger import LedgerOperationError

# 业务错误码 -> HTTP 状态码
ERROR_STATUS = {
    "REWARD_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "REDEMPTION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "USER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_CODE": status.HTTP_404_NOT_FOUND,
    "CATEGORY_MISMATCH": status.HTTP_400_BAD_REQUEST,
    "INVALID_AMOUNT": status.HTTP_400_BAD_REQUEST,
    "INVALID_COUNT": status.HTTP_400_BAD_REQUEST,
    "INSUFFICIENT_POINTS": status.HTTP_402_PAYMENT_REQUIRED,
    "ALREADY_USED": status.HTTP_409_CONFLICT,
    "ALREADY_USED_OR_EXPIRED": status.HTTP_409_CONFLICT,
    "NEGATIVE_BALANCE": status.HTTP_409_CONFLICT,
    "GENERATION_FAILED": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def ledger_http_error(exc: LedgerOperationError) -> HTTPException:
    """把积分操作异常转换为 HTTPException"""
    return HTTPException(
        status_code=ERROR_STATUS.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=exc.message,
    )
