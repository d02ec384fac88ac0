"""
兑换码业务服务层
负责兑换码的领取、商家预览和核销
"""

import hashlib
import logging
import math
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from dealina.core.authorization import Action, AuthorizationPolicy, Principal, authorization_policy
from dealina.core.clock import utcnow
from dealina.core.codes import create_with_unique_code, is_code_like, normalize_code
from dealina.core.config import Settings, settings
from dealina.core.exceptions import (
    BusinessException,
    ConflictError,
    NotActiveError,
    NotFoundError,
    RateLimitedError,
    UnexpectedError,
    ValidationError,
)
from dealina.models.deal import Deal
from dealina.models.redemption import (
    PreviewDeal,
    PreviewState,
    QrPayload,
    RedeemedRow,
    Redemption,
    RedemptionPreview,
    RedemptionResponse,
    RedemptionStatus,
)
from dealina.repositories.deal_repository import DealRepository
from dealina.repositories.redemption_repository import RedemptionRepository
from dealina.services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

MIN_DEVICE_ID_LENGTH = 8
HOARDING_RETRY_AFTER_SECONDS = 15


def hash_device_id(device_id: str) -> str:
    """设备ID只保存sha256摘要"""
    return hashlib.sha256(device_id.encode("utf-8")).hexdigest()


class RedemptionService:
    """兑换码业务服务"""

    def __init__(
        self,
        deal_repo: DealRepository,
        redemption_repo: RedemptionRepository,
        availability_service: Optional[AvailabilityService] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        policy: AuthorizationPolicy = authorization_policy
    ):
        self.deal_repo = deal_repo
        self.redemption_repo = redemption_repo
        self.availability = availability_service or AvailabilityService(deal_repo, redemption_repo)
        self.config = config or settings
        self.clock = clock
        self.policy = policy

    async def issue(self, deal_id: str, device_id: Optional[str] = None) -> RedemptionResponse:
        """
        为活动领取兑换码

        活动不存在抛 NotFoundError(DealNotFound), 不在有效期抛 NotActiveError(DealNotActive)。
        传入设备ID时: 复用同设备未过期的兑换码, 并做持有数量和冷却时间限制。
        """
        if not deal_id:
            raise ValidationError("缺少活动ID", code="missing_deal_id")

        device_hash = None
        if device_id is not None:
            if len(device_id.strip()) < MIN_DEVICE_ID_LENGTH:
                raise ValidationError("设备ID无效", code="invalid_device_id")
            device_hash = hash_device_id(device_id.strip())

        try:
            db_deal = await self.deal_repo.get_by_deal_id(deal_id)
            if not db_deal:
                raise NotFoundError("活动不存在", code="DealNotFound", details={"deal_id": deal_id})
            deal = self.deal_repo.to_model(db_deal)

            now = self.clock()
            if not deal.is_live(now):
                raise NotActiveError(
                    "活动不在有效期内",
                    code="DealNotActive",
                    details={
                        "deal_id": deal_id,
                        "starts_at": deal.starts_at.isoformat(),
                        "ends_at": deal.ends_at.isoformat()
                    }
                )

            if device_hash:
                reused = await self._check_device_limits(deal, device_hash, now)
                if reused is not None:
                    return reused

            if await self.availability.is_sold_out(deal.deal_id, deal.max_redemptions):
                raise ConflictError("活动已售罄", code="SoldOut", details={"deal_id": deal_id})

            expires_at = now + timedelta(minutes=self.config.qr_ttl_minutes)

            async def _create(code: str):
                return await self.redemption_repo.create({
                    "deal_id": deal.deal_id,
                    "merchant_id": deal.merchant_id,
                    "code": code,
                    "device_hash": device_hash,
                    "created_at": now,
                    "expires_at": expires_at
                })

            db_redemption = await create_with_unique_code(
                self.redemption_repo.code_exists,
                _create,
                length=self.config.short_code_length,
                max_attempts=self.config.short_code_max_attempts
            )
        except BusinessException:
            raise
        except SQLAlchemyError as e:
            logger.error(f"领取兑换码失败 deal={deal_id}: {e}")
            raise UnexpectedError("领取兑换码失败, 请稍后重试") from e

        redemption = self.redemption_repo.to_model(db_redemption)
        logger.info(f"兑换码已领取: deal={deal.deal_id} code={redemption.code}")
        return self._to_response(redemption)

    async def _check_device_limits(
        self,
        deal: Deal,
        device_hash: str,
        now: datetime
    ) -> Optional[RedemptionResponse]:
        """防刷检查, 可复用时返回已有兑换码"""
        existing = await self.redemption_repo.find_active_for_device(deal.deal_id, device_hash, now)
        if existing:
            logger.info(f"复用设备已有兑换码: deal={deal.deal_id} code={existing.code}")
            return self._to_response(self.redemption_repo.to_model(existing), reused=True)

        active_count = await self.redemption_repo.count_active_for_device(device_hash, now)
        limit = self.config.max_active_codes_per_device
        if active_count >= limit:
            logger.warning(
                f"拦截领取 HoardingLimit: deal={deal.deal_id} device={device_hash[:12]} active={active_count}"
            )
            raise RateLimitedError(
                "当前设备持有的兑换码过多, 请先使用或等待过期",
                code="HoardingLimit",
                retry_after=HOARDING_RETRY_AFTER_SECONDS,
                details={"active_count": active_count, "limit": limit}
            )

        latest = await self.redemption_repo.latest_created_at_for_device(deal.deal_id, device_hash)
        cooldown = self.config.issue_cooldown_seconds
        if latest is not None and cooldown > 0:
            elapsed = (now - latest).total_seconds()
            if elapsed < cooldown:
                retry_after = max(math.ceil(cooldown - elapsed), 1)
                logger.warning(
                    f"拦截领取 Cooldown: deal={deal.deal_id} device={device_hash[:12]} retry_after={retry_after}"
                )
                raise RateLimitedError(
                    f"请{retry_after}秒后再领取新的兑换码",
                    code="Cooldown",
                    retry_after=retry_after
                )

        return None

    async def confirm(
        self,
        code: Optional[str] = None,
        principal: Optional[Principal] = None,
        redemption_id: Optional[str] = None
    ) -> Redemption:
        """
        商家核销兑换码

        对同一个兑换码, 只有一次调用能成功; 其余调用抛 ConflictError(AlreadyRedeemed),
        并在 details 中带上原核销时间, 便于客户端识别自己此前已成功的请求。
        核销通过条件更新完成, 不依赖先读后写。
        """
        db_redemption = await self._load_redemption(code, redemption_id)

        try:
            # 锁住活动行, 并发核销在此排队, 保证不会超过核销上限
            db_deal = await self.deal_repo.get_for_update(db_redemption.deal_id)
            if not db_deal:
                raise NotFoundError("活动不存在", code="DealNotFound")
            deal = self.deal_repo.to_model(db_deal)

            self.policy.require(principal, deal, Action.CONFIRM_REDEMPTION)

            redemption = self.redemption_repo.to_model(db_redemption)
            if redemption.is_redeemed:
                raise self._already_redeemed(redemption)

            now = self.clock()
            if redemption.is_expired(now):
                raise NotActiveError(
                    "兑换码已过期",
                    code="CodeExpired",
                    details={"expires_at": redemption.expires_at.isoformat()}
                )

            if self.config.confirm_requires_active_deal and not deal.is_live(now):
                raise NotActiveError("活动不在有效期内", code="DealNotActive")

            if await self.availability.is_sold_out(deal.deal_id, deal.max_redemptions):
                raise ConflictError("活动已售罄", code="SoldOut", details={"deal_id": deal.deal_id})

            if not await self.redemption_repo.mark_redeemed(redemption.redemption_id, now):
                # 条件更新未命中, 说明已被其他请求核销
                latest = await self.redemption_repo.get_by_redemption_id(redemption.redemption_id)
                raise self._already_redeemed(self.redemption_repo.to_model(latest))
        except BusinessException:
            raise
        except SQLAlchemyError as e:
            logger.error(f"核销失败 code={db_redemption.code}: {e}")
            raise UnexpectedError("核销失败, 请稍后重试") from e

        logger.info(f"兑换码已核销: deal={deal.deal_id} code={redemption.code}")
        return redemption.model_copy(update={"redeemed_at": now, "status": RedemptionStatus.REDEEMED})

    async def preview(self, code: str, principal: Optional[Principal]) -> RedemptionPreview:
        """商家扫码预览, 状态判断与核销保持一致, 不修改数据"""
        db_redemption = await self._load_redemption(code, None)
        db_deal = await self.deal_repo.get_by_deal_id(db_redemption.deal_id)
        if not db_deal:
            raise NotFoundError("活动不存在", code="DealNotFound")
        deal = self.deal_repo.to_model(db_deal)

        self.policy.require(principal, deal, Action.PREVIEW_REDEMPTION)

        redemption = self.redemption_repo.to_model(db_redemption)
        now = self.clock()

        if redemption.is_redeemed:
            state = PreviewState.ALREADY_REDEEMED
        elif redemption.is_expired(now):
            state = PreviewState.CODE_EXPIRED
        elif self.config.confirm_requires_active_deal and not deal.has_started(now):
            state = PreviewState.DEAL_NOT_STARTED
        elif self.config.confirm_requires_active_deal and deal.has_ended(now):
            state = PreviewState.DEAL_ENDED
        elif await self.availability.is_sold_out(deal.deal_id, deal.max_redemptions):
            state = PreviewState.SOLD_OUT
        else:
            state = PreviewState.READY

        return RedemptionPreview(
            state=state,
            can_redeem=state == PreviewState.READY,
            code=redemption.code,
            expires_at=redemption.expires_at,
            redeemed_at=redemption.redeemed_at,
            deal=PreviewDeal(
                deal_id=deal.deal_id,
                title=deal.title,
                starts_at=deal.starts_at,
                ends_at=deal.ends_at,
                discount_type=deal.discount_type.value,
                discount_value=float(deal.discount_value),
                max_redemptions=deal.max_redemptions
            )
        )

    async def get_qr_payload(self, code: str) -> str:
        """生成二维码内容文本"""
        db_redemption = await self._load_redemption(code, None)
        return QrPayload(
            deal_id=db_redemption.deal_id,
            expires_at=db_redemption.expires_at
        ).to_text()

    async def list_recent_redeemed(self, principal: Optional[Principal], limit: int = 50) -> List[RedeemedRow]:
        """商家最近核销记录"""
        self.policy.require(principal, None, Action.VIEW_REDEMPTIONS)
        rows = await self.redemption_repo.list_recent_redeemed(principal.merchant_id, limit=limit)
        return [RedeemedRow(**row) for row in rows]

    async def _load_redemption(self, code: Optional[str], redemption_id: Optional[str]):
        """按兑换码或记录ID查找, 先在边界做格式校验"""
        if redemption_id:
            db_redemption = await self.redemption_repo.get_by_redemption_id(redemption_id)
        else:
            normalized = normalize_code(code)
            if not normalized:
                raise ValidationError("缺少兑换码", code="missing_code")
            if not is_code_like(normalized):
                raise ValidationError("兑换码格式错误", code="invalid_code")
            db_redemption = await self.redemption_repo.get_by_code(normalized)

        if not db_redemption:
            raise NotFoundError("兑换码不存在", code="CodeNotFound")
        return db_redemption

    def _already_redeemed(self, redemption: Redemption) -> ConflictError:
        return ConflictError(
            "兑换码已核销",
            code="AlreadyRedeemed",
            details={
                "redemption_id": redemption.redemption_id,
                "redeemed_at": redemption.redeemed_at.isoformat() if redemption.redeemed_at else None
            }
        )

    def _to_response(self, redemption: Redemption, reused: bool = False) -> RedemptionResponse:
        return RedemptionResponse(
            **redemption.model_dump(),
            reused=reused,
            qr_payload=QrPayload(deal_id=redemption.deal_id, expires_at=redemption.expires_at).to_text()
        )
