"""
库存计算服务
每次都根据核销记录实时统计, 不做任何缓存
"""

import asyncio
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from dealina.core.config import settings
from dealina.core.exceptions import NotFoundError
from dealina.models.deal import Availability
from dealina.repositories.deal_repository import DealRepository
from dealina.repositories.redemption_repository import RedemptionRepository

logger = logging.getLogger(__name__)


def compute_availability(
    deal_id: str,
    max_redemptions: Optional[int],
    redeemed_count: int
) -> Availability:
    """
    根据核销上限和已核销数计算库存
    上限为空表示不限量; 其余任何上限(包括0)都按限量处理
    """
    if max_redemptions is None:
        return Availability(
            deal_id=deal_id,
            max_redemptions=None,
            redeemed_count=redeemed_count,
            left=None,
            sold_out=False
        )

    return Availability(
        deal_id=deal_id,
        max_redemptions=max_redemptions,
        redeemed_count=redeemed_count,
        left=max(max_redemptions - redeemed_count, 0),
        sold_out=redeemed_count >= max_redemptions
    )


def unknown_availability(deal_id: str) -> Availability:
    """查询失败时返回的占位结果, 前端显示为"查询中" """
    return Availability(deal_id=deal_id, status="unknown")


class AvailabilityService:
    """库存查询服务"""

    def __init__(
        self,
        deal_repo: DealRepository,
        redemption_repo: RedemptionRepository,
        timeout: Optional[float] = None
    ):
        self.deal_repo = deal_repo
        self.redemption_repo = redemption_repo
        self.timeout = timeout if timeout is not None else settings.availability_timeout_seconds

    async def get_availability(self, deal_id: str) -> Availability:
        """单个活动库存"""
        deal = await self.deal_repo.get_by_deal_id(deal_id)
        if not deal:
            raise NotFoundError("活动不存在", code="DealNotFound", details={"deal_id": deal_id})

        redeemed_count = await self.redemption_repo.count_redeemed(deal_id)
        return compute_availability(deal_id, deal.max_redemptions, redeemed_count)

    async def get_availability_batch(self, deal_ids: List[str]) -> Dict[str, Availability]:
        """批量库存, 一次查上限一次分组统计; 不存在的ID不出现在结果中"""
        unique_ids = list(dict.fromkeys(deal_ids))
        caps = await self.deal_repo.get_caps(unique_ids)
        counts = await self.redemption_repo.count_redeemed_by_deals(list(caps.keys()))

        return {
            deal_id: compute_availability(deal_id, cap, counts.get(deal_id, 0))
            for deal_id, cap in caps.items()
        }

    async def get_availability_safe(self, deal_id: str) -> Availability:
        """带超时的库存查询, 超时或存储异常时返回 unknown 而不是报错"""
        try:
            return await asyncio.wait_for(self.get_availability(deal_id), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"库存查询超时: {deal_id}")
            return unknown_availability(deal_id)
        except SQLAlchemyError as e:
            logger.error(f"库存查询失败 {deal_id}: {e}")
            return unknown_availability(deal_id)

    async def get_availability_batch_safe(self, deal_ids: List[str]) -> Dict[str, Availability]:
        """带超时的批量库存查询"""
        try:
            return await asyncio.wait_for(self.get_availability_batch(deal_ids), timeout=self.timeout)
        except (asyncio.TimeoutError, SQLAlchemyError) as e:
            logger.warning(f"批量库存查询失败, 返回unknown: {e!r}")
            return {deal_id: unknown_availability(deal_id) for deal_id in dict.fromkeys(deal_ids)}

    async def is_sold_out(self, deal_id: str, max_redemptions: Optional[int]) -> bool:
        """领取/核销前的售罄判断"""
        if max_redemptions is None:
            return False
        redeemed_count = await self.redemption_repo.count_redeemed(deal_id)
        return compute_availability(deal_id, max_redemptions, redeemed_count).sold_out
