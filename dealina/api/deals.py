from typing import List

from fastapi import APIRouter, Depends, Query

from dealina.api.deps import get_deal_service, get_principal
from dealina.core.authorization import Principal
from dealina.models.deal import Deal, DealCreate, DealResponse, DealUpdate
from dealina.services.deal_service import DealService

router = APIRouter(tags=["优惠活动"])


@router.post("/deals", response_model=Deal, status_code=201)
async def create_deal(
    deal_data: DealCreate,
    principal: Principal = Depends(get_principal),
    deal_service: DealService = Depends(get_deal_service)
):
    """商家创建活动"""
    return await deal_service.create_deal(principal, deal_data)


@router.get("/deals/code/{short_code}", response_model=Deal)
async def get_deal_by_short_code(short_code: str, deal_service: DealService = Depends(get_deal_service)):
    """根据活动短码查询"""
    return await deal_service.get_deal_by_short_code(short_code)


@router.get("/deals/{deal_id}", response_model=Deal)
async def get_deal(deal_id: str, deal_service: DealService = Depends(get_deal_service)):
    """查询活动详情"""
    return await deal_service.get_deal(deal_id)


@router.patch("/deals/{deal_id}", response_model=Deal)
async def update_deal(
    deal_id: str,
    deal_data: DealUpdate,
    principal: Principal = Depends(get_principal),
    deal_service: DealService = Depends(get_deal_service)
):
    """修改活动, 只修改传入的字段"""
    return await deal_service.update_deal(principal, deal_id, deal_data)


@router.delete("/deals/{deal_id}", response_model=Deal)
async def delete_deal(
    deal_id: str,
    principal: Principal = Depends(get_principal),
    deal_service: DealService = Depends(get_deal_service)
):
    """下架活动"""
    return await deal_service.deactivate_deal(principal, deal_id)


@router.post("/deals/{deal_id}/repost", response_model=Deal, status_code=201)
async def repost_deal(
    deal_id: str,
    principal: Principal = Depends(get_principal),
    deal_service: DealService = Depends(get_deal_service)
):
    """重新发布已结束的活动"""
    return await deal_service.repost_deal(principal, deal_id)


@router.get("/merchant/deals", response_model=List[DealResponse])
async def list_merchant_deals(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(get_principal),
    deal_service: DealService = Depends(get_deal_service)
):
    """当前商家的活动列表"""
    return await deal_service.list_merchant_deals(principal, limit=limit, offset=offset)
