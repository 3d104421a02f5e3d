"""
外卖兑换码路由
"""
from dataclasses import asdict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from namaste_loyalty.database import get_db
from namaste_loyalty.models.user import User
from namaste_loyalty.schemas.codes import RedeemCodeRequest, RedeemCodeResponse
from namaste_loyalty.services import ledger
from namaste_loyalty.services.rate_limit import RateLimiter, get_rate_limiter
from namaste_loyalty.utils.security import get_current_user, get_client_ip

router = APIRouter()


@router.post(
    "/redeem",
    response_model=RedeemCodeResponse,
    responses={429: {"model": RedeemCodeResponse, "description": "尝试次数过多"}},
)
async def redeem_code(
    data: RedeemCodeRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """
    兑换外卖订单上的兑换码

    兑换码无效、已使用、已过期等情况返回 200 和 success=false；
    被限流时返回 429，rate_limited=true，前端据此提示冷却时间。
    """
    result = await ledger.redeem_delivery_code(
        db,
        code=data.code,
        user_id=current_user.id,
        ip_address=get_client_ip(request),
        limiter=limiter,
    )
    if result.rate_limited:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content=RedeemCodeResponse(**asdict(result)).model_dump(),
        )
    return RedeemCodeResponse(**asdict(result))
