"""
测试配置文件 - pytest fixtures和共用配置
仓库和服务测试使用内存SQLite, 每个测试一个全新的数据库
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import dealina.models.database  # noqa: F401  注册数据表
from dealina.core.authorization import Principal
from dealina.core.config import Settings
from dealina.core.database import Base, build_engine
from dealina.repositories.deal_repository import DealRepository
from dealina.repositories.merchant_repository import MerchantRepository
from dealina.repositories.redemption_repository import RedemptionRepository
from dealina.services.availability_service import AvailabilityService
from dealina.services.deal_service import DealService
from dealina.services.redemption_service import RedemptionService


# 测试中统一使用的"当前时间"
NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def test_settings():
    """测试配置: 关闭缓存, 其余使用默认值"""
    return Settings(cache_enabled=False, demo_mode=False)


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """测试数据库引擎 - 内存SQLite"""
    engine = build_engine("sqlite+aiosqlite://")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_db_engine) -> AsyncSession:
    """测试数据库会话"""
    session_maker = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@pytest.fixture
def deal_repo(db_session):
    return DealRepository(db_session)


@pytest.fixture
def redemption_repo(db_session):
    return RedemptionRepository(db_session)


@pytest_asyncio.fixture
async def merchant(db_session):
    """已注册的商家"""
    db_merchant = await MerchantRepository(db_session).create("user_owner", "老王咖啡")
    await db_session.commit()
    return db_merchant


@pytest_asyncio.fixture
async def other_merchant(db_session):
    db_merchant = await MerchantRepository(db_session).create("user_other", "隔壁面包店")
    await db_session.commit()
    return db_merchant


@pytest.fixture
def owner(merchant):
    """活动所有者身份"""
    return Principal(user_id="user_owner", merchant_id=merchant.merchant_id)


@pytest.fixture
def stranger(other_merchant):
    """其他商家身份"""
    return Principal(user_id="user_other", merchant_id=other_merchant.merchant_id)


def make_deal_data(merchant_id: str, **overrides) -> dict:
    """活动表字段, 默认处于有效期内且不限量"""
    data = {
        "merchant_id": merchant_id,
        "short_code": "DEAL2",
        "title": "拿铁第二杯半价",
        "description": "工作日可用",
        "discount_type": "percentage",
        "discount_value": Decimal("50.00"),
        "currency": "USD",
        "starts_at": NOW - timedelta(days=1),
        "ends_at": NOW + timedelta(days=7),
        "max_redemptions": None,
        "is_active": True,
    }
    data.update(overrides)
    return data


@pytest_asyncio.fixture
async def live_deal(deal_repo, merchant, db_session):
    """有效期内、不限量的活动"""
    db_deal = await deal_repo.create(make_deal_data(merchant.merchant_id))
    await db_session.commit()
    return db_deal


@pytest_asyncio.fixture
async def capped_deal(deal_repo, merchant, db_session):
    """有效期内、限量1份的活动"""
    db_deal = await deal_repo.create(
        make_deal_data(merchant.merchant_id, short_code="CAP01", max_redemptions=1)
    )
    await db_session.commit()
    return db_deal


@pytest.fixture
def availability_service(deal_repo, redemption_repo):
    return AvailabilityService(deal_repo, redemption_repo, timeout=5)


@pytest.fixture
def redemption_service(deal_repo, redemption_repo, availability_service, test_settings):
    """使用固定时钟的兑换服务"""
    return RedemptionService(
        deal_repo,
        redemption_repo,
        availability_service=availability_service,
        config=test_settings,
        clock=lambda: NOW
    )


@pytest.fixture
def deal_service(deal_repo, availability_service, test_settings):
    """使用固定时钟的活动服务"""
    return DealService(
        deal_repo,
        availability_service=availability_service,
        config=test_settings,
        clock=lambda: NOW
    )
