from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from dealina.api.deps import get_device_id, get_principal, get_redemption_service
from dealina.core.authorization import Principal
from dealina.core.codes import normalize_code
from dealina.models.redemption import (
    CodeRequest,
    ConfirmRequest,
    RedeemedRow,
    RedemptionPreview,
    RedemptionResponse,
)
from dealina.services.redemption_service import RedemptionService

router = APIRouter(tags=["兑换"])


@router.post("/deals/{deal_id}/redemptions", response_model=RedemptionResponse, status_code=201)
async def issue_redemption(
    deal_id: str,
    device_id: Optional[str] = Depends(get_device_id),
    redemption_service: RedemptionService = Depends(get_redemption_service)
):
    """顾客领取兑换码"""
    return await redemption_service.issue(deal_id, device_id=device_id)


@router.post("/redemptions/preview", response_model=RedemptionPreview)
async def preview_redemption(
    request: CodeRequest,
    principal: Principal = Depends(get_principal),
    redemption_service: RedemptionService = Depends(get_redemption_service)
):
    """商家扫码预览"""
    return await redemption_service.preview(request.code, principal)


@router.post("/redemptions/confirm")
async def confirm_redemption(
    request: ConfirmRequest,
    principal: Principal = Depends(get_principal),
    redemption_service: RedemptionService = Depends(get_redemption_service)
):
    """商家核销兑换码"""
    redemption = await redemption_service.confirm(
        code=request.code,
        principal=principal,
        redemption_id=request.redemption_id
    )
    return {"ok": True, "status": "REDEEMED", "redemption": redemption}


@router.get("/redemptions/{code}/qr")
async def get_qr_payload(code: str, redemption_service: RedemptionService = Depends(get_redemption_service)):
    """二维码内容"""
    return {"code": normalize_code(code), "payload": await redemption_service.get_qr_payload(code)}


@router.get("/merchant/redemptions", response_model=List[RedeemedRow])
async def list_recent_redemptions(
    limit: int = Query(50, ge=1, le=200),
    principal: Principal = Depends(get_principal),
    redemption_service: RedemptionService = Depends(get_redemption_service)
):
    """商家最近核销记录"""
    return await redemption_service.list_recent_redeemed(principal, limit=limit)
