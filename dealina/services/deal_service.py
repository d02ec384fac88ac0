"""
优惠活动业务服务层
提供活动的创建、修改、查询、下架和重新发布
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from dealina.core.authorization import Action, AuthorizationPolicy, Principal, authorization_policy
from dealina.core.clock import utcnow
from dealina.core.codes import create_with_unique_code, normalize_code
from dealina.core.config import Settings, settings
from dealina.core.exceptions import (
    BusinessException,
    NotActiveError,
    NotFoundError,
    UnexpectedError,
    ValidationError,
)
from dealina.models.deal import Deal, DealCreate, DealResponse, DealUpdate, DiscountType
from dealina.repositories.deal_repository import DealRepository
from dealina.services.availability_service import AvailabilityService
from dealina.services.common_cache import SimpleCache, deal_cache

logger = logging.getLogger(__name__)


class DealService:
    """优惠活动业务服务"""

    def __init__(
        self,
        deal_repo: DealRepository,
        availability_service: Optional[AvailabilityService] = None,
        cache: Optional[SimpleCache] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        policy: AuthorizationPolicy = authorization_policy
    ):
        self.deal_repo = deal_repo
        self.availability = availability_service
        self.cache = cache or deal_cache
        self.config = config or settings
        self.clock = clock
        self.policy = policy

    @property
    def use_cache(self) -> bool:
        return self.config.cache_enabled

    async def create_deal(self, principal: Optional[Principal], deal_data: DealCreate) -> Deal:
        """创建活动, 短码冲突时重新生成"""
        self.policy.require(principal, None, Action.CREATE_DEAL)

        fields = {
            "merchant_id": principal.merchant_id,
            "title": deal_data.title,
            "description": deal_data.description,
            "discount_type": deal_data.discount_type.value,
            "discount_value": deal_data.discount_value,
            "original_price": deal_data.original_price,
            "currency": deal_data.currency,
            "starts_at": deal_data.starts_at,
            "ends_at": deal_data.ends_at,
            "max_redemptions": deal_data.max_redemptions,
            "image_url": deal_data.image_url,
            "is_active": True,
        }

        deal = await self._create_with_short_code(fields)
        logger.info(f"活动已创建: {deal.deal_id} code={deal.short_code} merchant={deal.merchant_id}")
        return deal

    async def update_deal(self, principal: Optional[Principal], deal_id: str, deal_data: DealUpdate) -> Deal:
        """修改活动, 只修改传入的字段"""
        existing = await self._get_owned_deal(principal, deal_id, Action.UPDATE_DEAL)

        changes = deal_data.model_dump(exclude_unset=True)
        if "discount_type" in changes:
            changes["discount_type"] = DiscountType(changes["discount_type"]).value

        merged_type = DiscountType(changes.get("discount_type", existing.discount_type))
        merged_value = Decimal(changes.get("discount_value", existing.discount_value))
        if merged_type == DiscountType.PERCENTAGE and not (Decimal("0") < merged_value <= Decimal("100")):
            raise ValidationError("百分比折扣必须在0到100之间", code="invalid_discount")
        if merged_type == DiscountType.FIXED_AMOUNT and merged_value <= 0:
            raise ValidationError("固定金额折扣必须大于0", code="invalid_discount")

        db_deal = await self.deal_repo.update(deal_id, changes)
        await self._clear_deal_caches(existing)

        deal = self.deal_repo.to_model(db_deal)
        logger.info(f"活动已修改: {deal_id} fields={sorted(changes.keys())}")
        return deal

    async def deactivate_deal(self, principal: Optional[Principal], deal_id: str) -> Deal:
        """下架活动(软删除), 已有兑换记录保留"""
        existing = await self._get_owned_deal(principal, deal_id, Action.DELETE_DEAL)

        db_deal = await self.deal_repo.update(deal_id, {"is_active": False})
        await self._clear_deal_caches(existing)

        logger.info(f"活动已下架: {deal_id}")
        return self.deal_repo.to_model(db_deal)

    async def repost_deal(self, principal: Optional[Principal], deal_id: str) -> Deal:
        """
        重新发布已结束的活动

        新活动复制标题、描述、折扣、上限和图片, 使用新的短码,
        从当前时间开始, 持续时间沿用原活动(无法计算时使用默认天数),
        并记录来源活动ID。活动尚未结束时抛 NotActiveError(DealNotExpired)。
        """
        source = await self._get_owned_deal(principal, deal_id, Action.REPOST_DEAL)

        now = self.clock()
        if not source.has_ended(now):
            raise NotActiveError(
                "活动尚未结束, 不能重新发布",
                code="DealNotExpired",
                details={"deal_id": deal_id, "ends_at": source.ends_at.isoformat()}
            )

        duration = source.window_duration()
        if duration <= timedelta(0):
            duration = timedelta(days=self.config.repost_default_days)

        fields = {
            "merchant_id": source.merchant_id,
            "title": source.title,
            "description": source.description,
            "discount_type": source.discount_type.value,
            "discount_value": source.discount_value,
            "original_price": source.original_price,
            "currency": source.currency,
            "starts_at": now,
            "ends_at": now + duration,
            "max_redemptions": source.max_redemptions,
            "image_url": source.image_url,
            "reposted_from_id": source.deal_id,
            "is_active": True,
        }

        deal = await self._create_with_short_code(fields)
        logger.info(f"活动已重新发布: {source.deal_id} -> {deal.deal_id}")
        return deal

    async def get_deal(self, deal_id: str) -> Deal:
        """公开读取活动, 下架的活动视为不存在"""
        cache_key = f"id:{deal_id}"

        if self.use_cache:
            cached_deal = await self.cache.get(cache_key)
            if cached_deal:
                return Deal(**cached_deal)

        db_deal = await self.deal_repo.get_by_deal_id(deal_id)
        if not db_deal or not db_deal.is_active:
            raise NotFoundError("活动不存在", code="DealNotFound", details={"deal_id": deal_id})

        deal = self.deal_repo.to_model(db_deal)
        if self.use_cache:
            await self.cache.set(cache_key, deal.model_dump(mode="json"), ttl=self.config.deal_cache_ttl)
        return deal

    async def get_deal_by_short_code(self, short_code: str) -> Deal:
        """根据活动短码读取"""
        code = normalize_code(short_code)
        if not code:
            raise ValidationError("缺少活动短码", code="missing_code")
        cache_key = f"code:{code}"

        if self.use_cache:
            cached_deal = await self.cache.get(cache_key)
            if cached_deal:
                return Deal(**cached_deal)

        db_deal = await self.deal_repo.get_by_short_code(code)
        if not db_deal or not db_deal.is_active:
            raise NotFoundError("活动不存在", code="DealNotFound", details={"short_code": code})

        deal = self.deal_repo.to_model(db_deal)
        if self.use_cache:
            await self.cache.set(cache_key, deal.model_dump(mode="json"), ttl=self.config.deal_cache_ttl)
        return deal

    async def list_merchant_deals(
        self,
        principal: Optional[Principal],
        limit: int = 50,
        offset: int = 0
    ) -> List[DealResponse]:
        """商家活动列表, 附带实时库存"""
        self.policy.require(principal, None, Action.LIST_DEALS)

        db_deals = await self.deal_repo.list_by_merchant(principal.merchant_id, limit=limit, offset=offset)
        deals = [self.deal_repo.to_model(db_deal) for db_deal in db_deals]

        availability = {}
        if self.availability is not None and deals:
            availability = await self.availability.get_availability_batch_safe([d.deal_id for d in deals])

        return [DealResponse.from_deal(deal, availability.get(deal.deal_id)) for deal in deals]

    async def _get_owned_deal(self, principal: Optional[Principal], deal_id: str, action: Action) -> Deal:
        db_deal = await self.deal_repo.get_by_deal_id(deal_id)
        if not db_deal:
            raise NotFoundError("活动不存在", code="DealNotFound", details={"deal_id": deal_id})
        deal = self.deal_repo.to_model(db_deal)
        self.policy.require(principal, deal, action)
        return deal

    async def _create_with_short_code(self, fields: dict) -> Deal:
        async def _create(code: str):
            return await self.deal_repo.create({**fields, "short_code": code})

        try:
            db_deal = await create_with_unique_code(
                self.deal_repo.short_code_exists,
                _create,
                length=self.config.short_code_length,
                max_attempts=self.config.short_code_max_attempts,
                column="short_code"
            )
        except BusinessException:
            raise
        except SQLAlchemyError as e:
            logger.error(f"创建活动失败: {e}")
            raise UnexpectedError("创建活动失败, 请稍后重试") from e

        return self.deal_repo.to_model(db_deal)

    async def _clear_deal_caches(self, deal: Deal) -> None:
        """清除活动相关缓存"""
        if self.use_cache:
            await self.cache.delete(f"id:{deal.deal_id}", f"code:{deal.short_code}")
