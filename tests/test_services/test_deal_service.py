"""
DealService业务逻辑测试
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from dealina.core.authorization import Principal
from dealina.core.config import Settings
from dealina.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotActiveError,
    NotFoundError,
    UnexpectedError,
    ValidationError,
)
from dealina.models.database.deal_db import DealDB
from dealina.models.deal import DealCreate, DealUpdate, DiscountType
from dealina.repositories.deal_repository import DealRepository
from dealina.services.deal_service import DealService
from tests.conftest import NOW, make_deal_data


async def count_deals(db_session) -> int:
    result = await db_session.execute(select(func.count(DealDB.deal_id)))
    return result.scalar()


@pytest.fixture
def deal_create():
    return DealCreate(
        title="Happy Hour 买一送一",
        description="17:00-19:00 全场饮品",
        discount_type=DiscountType.FIXED_AMOUNT,
        discount_value=Decimal("5.50"),
        original_price=Decimal("11.00"),
        starts_at=NOW,
        ends_at=NOW + timedelta(days=14),
        max_redemptions=50
    )


@pytest.mark.asyncio
class TestDealLifecycle:
    """活动创建、修改、下架"""

    async def test_create_then_get_round_trip(self, deal_service, owner, deal_create):
        created = await deal_service.create_deal(owner, deal_create)

        fetched = await deal_service.get_deal(created.deal_id)

        assert fetched.title == "Happy Hour 买一送一"
        assert fetched.description == "17:00-19:00 全场饮品"
        assert fetched.starts_at == NOW
        assert fetched.ends_at == NOW + timedelta(days=14)
        assert fetched.max_redemptions == 50
        assert fetched.discount_type == DiscountType.FIXED_AMOUNT
        assert fetched.discount_value == Decimal("5.50")
        assert fetched.merchant_id == owner.merchant_id
        assert len(fetched.short_code) == 5
        assert fetched.reposted_from_id is None

    async def test_create_requires_merchant(self, deal_service, deal_create):
        with pytest.raises(AuthorizationError) as exc_info:
            await deal_service.create_deal(Principal(user_id="just_a_user"), deal_create)
        assert exc_info.value.code == "MerchantNotFound"

    async def test_get_by_short_code_normalizes_input(self, deal_service, owner, deal_create):
        created = await deal_service.create_deal(owner, deal_create)

        fetched = await deal_service.get_deal_by_short_code(f" {created.short_code.lower()} ")
        assert fetched.deal_id == created.deal_id

    async def test_partial_update(self, deal_service, owner, live_deal):
        updated = await deal_service.update_deal(
            owner, live_deal.deal_id, DealUpdate(title="拿铁买一送一", max_redemptions=30)
        )

        assert updated.title == "拿铁买一送一"
        assert updated.max_redemptions == 30
        assert updated.description == "工作日可用"
        assert updated.discount_value == Decimal("50.00")
        assert updated.short_code == "DEAL2"

    async def test_update_rejects_invalid_merged_discount(self, deal_service, owner, live_deal):
        """只改折扣值时, 与原有折扣类型合并后校验"""
        with pytest.raises(ValidationError) as exc_info:
            await deal_service.update_deal(
                owner, live_deal.deal_id, DealUpdate(discount_value=Decimal("150"))
            )
        assert exc_info.value.code == "invalid_discount"

    async def test_update_by_other_merchant(self, deal_service, stranger, live_deal):
        with pytest.raises(AuthorizationError) as exc_info:
            await deal_service.update_deal(stranger, live_deal.deal_id, DealUpdate(title="抢来的"))
        assert exc_info.value.code == "NotOwner"

    async def test_update_missing_deal(self, deal_service, owner):
        with pytest.raises(NotFoundError):
            await deal_service.update_deal(owner, "missing", DealUpdate(title="x"))

    async def test_deactivate_hides_deal(self, deal_service, owner, live_deal):
        deactivated = await deal_service.deactivate_deal(owner, live_deal.deal_id)
        assert deactivated.is_active is False

        with pytest.raises(NotFoundError):
            await deal_service.get_deal(live_deal.deal_id)

    async def test_list_merchant_deals_with_availability(
        self, deal_service, owner, live_deal, capped_deal, redemption_service
    ):
        issued = await redemption_service.issue(capped_deal.deal_id)
        await redemption_service.confirm(issued.code, owner)

        deals = await deal_service.list_merchant_deals(owner)

        by_id = {deal.deal_id: deal for deal in deals}
        assert set(by_id) == {live_deal.deal_id, capped_deal.deal_id}
        assert by_id[capped_deal.deal_id].sold_out is True
        assert by_id[capped_deal.deal_id].left == 0
        assert by_id[live_deal.deal_id].left is None


@pytest.mark.asyncio
class TestRepost:
    """重新发布已结束的活动"""

    async def test_repost_expired_deal(self, db_session, deal_service, deal_repo, merchant, owner):
        source = await deal_repo.create(make_deal_data(
            merchant.merchant_id,
            short_code="OLD30",
            starts_at=NOW - timedelta(days=30),
            ends_at=NOW - timedelta(days=2),
            max_redemptions=200
        ))

        reposted = await deal_service.repost_deal(owner, source.deal_id)

        assert reposted.deal_id != source.deal_id
        assert reposted.starts_at == NOW
        assert reposted.ends_at == NOW + timedelta(days=28)
        assert reposted.short_code != "OLD30"
        assert reposted.reposted_from_id == source.deal_id
        assert reposted.max_redemptions == 200
        assert reposted.title == source.title
        assert reposted.is_active is True
        assert await count_deals(db_session) == 2

    async def test_repost_not_expired_creates_nothing(self, db_session, deal_service, deal_repo, merchant, owner):
        source = await deal_repo.create(make_deal_data(
            merchant.merchant_id,
            short_code="NEW05",
            starts_at=NOW - timedelta(days=1),
            ends_at=NOW + timedelta(days=5)
        ))

        with pytest.raises(NotActiveError) as exc_info:
            await deal_service.repost_deal(owner, source.deal_id)

        assert exc_info.value.code == "DealNotExpired"
        assert await count_deals(db_session) == 1

    async def test_repost_uses_default_duration(self, deal_service, deal_repo, merchant, owner):
        """原活动时长无法计算(非正数)时使用默认7天"""
        source = await deal_repo.create(make_deal_data(
            merchant.merchant_id,
            short_code="ZERO0",
            starts_at=NOW - timedelta(days=3),
            ends_at=NOW - timedelta(days=3)
        ))

        reposted = await deal_service.repost_deal(owner, source.deal_id)
        assert reposted.ends_at == NOW + timedelta(days=7)

    async def test_repost_by_other_merchant(self, deal_service, deal_repo, merchant, stranger):
        source = await deal_repo.create(make_deal_data(
            merchant.merchant_id,
            short_code="OLD31",
            starts_at=NOW - timedelta(days=30),
            ends_at=NOW - timedelta(days=2)
        ))

        with pytest.raises(AuthorizationError) as exc_info:
            await deal_service.repost_deal(stranger, source.deal_id)
        assert exc_info.value.code == "NotOwner"


@pytest.mark.asyncio
class TestDealServiceWithMocks:
    """缓存与短码重试"""

    @pytest.fixture
    def mock_deal_repo(self):
        return AsyncMock(spec=DealRepository)

    @pytest.fixture
    def mock_cache(self):
        """模拟缓存"""
        cache = AsyncMock()
        cache.get = AsyncMock(return_value=None)
        cache.set = AsyncMock()
        cache.delete = AsyncMock()
        return cache

    @pytest.fixture
    def cached_service(self, mock_deal_repo, mock_cache):
        return DealService(
            mock_deal_repo,
            cache=mock_cache,
            config=Settings(cache_enabled=True, deal_cache_ttl=60, demo_mode=False),
            clock=lambda: NOW
        )

    @pytest.fixture
    def sample_deal(self):
        return DealRepository(None).to_model(DealDB(**make_deal_data("m_1"), deal_id="d_1"))

    async def test_get_deal_cache_hit(self, cached_service, mock_cache, mock_deal_repo, sample_deal):
        mock_cache.get.return_value = sample_deal.model_dump(mode="json")

        result = await cached_service.get_deal("d_1")

        assert result.title == sample_deal.title
        mock_cache.get.assert_called_once_with("id:d_1")
        mock_deal_repo.get_by_deal_id.assert_not_called()

    async def test_get_deal_cache_miss(self, cached_service, mock_cache, mock_deal_repo, sample_deal):
        db_deal = DealDB(deal_id="d_1", is_active=True)
        mock_deal_repo.get_by_deal_id.return_value = db_deal
        mock_deal_repo.to_model.return_value = sample_deal

        result = await cached_service.get_deal("d_1")

        assert result == sample_deal
        mock_deal_repo.get_by_deal_id.assert_called_once_with("d_1")
        mock_cache.set.assert_called_once_with("id:d_1", sample_deal.model_dump(mode="json"), ttl=60)

    async def test_update_clears_cache(self, cached_service, mock_cache, mock_deal_repo, sample_deal):
        owner = Principal(user_id="u_1", merchant_id="m_1")
        mock_deal_repo.get_by_deal_id.return_value = DealDB(deal_id="d_1")
        mock_deal_repo.to_model.return_value = sample_deal

        await cached_service.update_deal(owner, "d_1", DealUpdate(title="新标题"))

        mock_deal_repo.update.assert_called_once_with("d_1", {"title": "新标题"})
        mock_cache.delete.assert_called_once_with("id:d_1", "code:DEAL2")

    async def test_short_code_exhausted(self, cached_service, mock_deal_repo):
        owner = Principal(user_id="u_1", merchant_id="m_1")
        mock_deal_repo.short_code_exists.return_value = True

        with pytest.raises(ConflictError) as exc_info:
            await cached_service.create_deal(owner, DealCreate(
                title="短码用尽", starts_at=NOW, ends_at=NOW + timedelta(days=1)
            ))

        assert exc_info.value.code == "ShortCodeExhausted"
        assert mock_deal_repo.short_code_exists.await_count == 3
        mock_deal_repo.create.assert_not_called()

    async def test_short_code_unique_conflict_is_retried(self, cached_service, mock_deal_repo, sample_deal):
        owner = Principal(user_id="u_1", merchant_id="m_1")
        mock_deal_repo.short_code_exists.return_value = False
        mock_deal_repo.create.side_effect = [
            IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: deals.short_code")),
            DealDB(deal_id="d_1"),
        ]
        mock_deal_repo.to_model.return_value = sample_deal

        result = await cached_service.create_deal(owner, DealCreate(
            title="短码冲突", starts_at=NOW, ends_at=NOW + timedelta(days=1)
        ))

        assert result == sample_deal
        assert mock_deal_repo.create.await_count == 2

    async def test_foreign_key_error_is_not_retried(self, cached_service, mock_deal_repo):
        owner = Principal(user_id="u_1", merchant_id="m_1")
        mock_deal_repo.short_code_exists.return_value = False
        mock_deal_repo.create.side_effect = IntegrityError(
            "INSERT", {}, Exception("FOREIGN KEY constraint failed")
        )

        with pytest.raises(UnexpectedError):
            await cached_service.create_deal(owner, DealCreate(
                title="商户不存在", starts_at=NOW, ends_at=NOW + timedelta(days=1)
            ))

        mock_deal_repo.create.assert_awaited_once()
