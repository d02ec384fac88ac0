"""
依赖注入: 数据库会话、调用方身份和各业务服务
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from dealina.core.authorization import Principal
from dealina.core.database import get_db_session
from dealina.repositories.deal_repository import DealRepository
from dealina.repositories.merchant_repository import MerchantRepository
from dealina.repositories.redemption_repository import RedemptionRepository
from dealina.services.availability_service import AvailabilityService
from dealina.services.deal_service import DealService
from dealina.services.merchant_service import MerchantService
from dealina.services.redemption_service import RedemptionService


def get_merchant_service(session: AsyncSession = Depends(get_db_session)) -> MerchantService:
    return MerchantService(MerchantRepository(session))


def get_availability_service(session: AsyncSession = Depends(get_db_session)) -> AvailabilityService:
    return AvailabilityService(DealRepository(session), RedemptionRepository(session))


def get_deal_service(
    session: AsyncSession = Depends(get_db_session),
    availability_service: AvailabilityService = Depends(get_availability_service)
) -> DealService:
    return DealService(DealRepository(session), availability_service=availability_service)


def get_redemption_service(
    session: AsyncSession = Depends(get_db_session),
    availability_service: AvailabilityService = Depends(get_availability_service)
) -> RedemptionService:
    return RedemptionService(
        DealRepository(session),
        RedemptionRepository(session),
        availability_service=availability_service
    )


async def get_principal(
    x_user_id: Optional[str] = Header(None),
    merchant_service: MerchantService = Depends(get_merchant_service)
) -> Principal:
    """身份由前置的认证服务通过 X-User-Id 传入"""
    return await merchant_service.resolve_principal((x_user_id or "").strip() or None)


def get_device_id(x_device_id: Optional[str] = Header(None)) -> Optional[str]:
    return (x_device_id or "").strip() or None
