from typing import Dict

from fastapi import APIRouter, Depends

from dealina.api.deps import get_availability_service
from dealina.models.deal import Availability, AvailabilityBatchRequest
from dealina.services.availability_service import AvailabilityService

router = APIRouter(tags=["库存"])


@router.post("/deals/availability")
async def get_availability_batch(
    request: AvailabilityBatchRequest,
    availability_service: AvailabilityService = Depends(get_availability_service)
) -> Dict[str, Dict[str, Availability]]:
    """批量查询库存"""
    return {"map": await availability_service.get_availability_batch_safe(request.ids)}


@router.get("/deals/{deal_id}/availability", response_model=Availability)
async def get_availability(
    deal_id: str,
    availability_service: AvailabilityService = Depends(get_availability_service)
):
    """单个活动库存, 查询超时返回 status=unknown"""
    return await availability_service.get_availability_safe(deal_id)
