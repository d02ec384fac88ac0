from fastapi import APIRouter, Depends

from dealina.api.deps import get_merchant_service, get_principal
from dealina.core.authorization import Principal
from dealina.core.exceptions import AuthenticationError
from dealina.models.merchant import Merchant, MerchantCreate
from dealina.services.merchant_service import MerchantService

router = APIRouter(prefix="/merchants", tags=["商家"])


@router.post("", response_model=Merchant, status_code=201)
async def register_merchant(
    merchant_data: MerchantCreate,
    principal: Principal = Depends(get_principal),
    merchant_service: MerchantService = Depends(get_merchant_service)
):
    """当前登录用户注册为商家"""
    if not principal.user_id:
        raise AuthenticationError("请先登录", code="unauthenticated")
    return await merchant_service.register(principal.user_id, merchant_data)
