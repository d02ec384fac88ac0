"""
优惠活动数据库操作层
"""

import uuid
from typing import List, Optional, Dict, Any

from sqlalchemy import select, update, desc
from sqlalchemy.ext.asyncio import AsyncSession

from dealina.core.clock import utcnow
from dealina.models.deal import Deal
from dealina.models.database.deal_db import DealDB


class DealRepository:
    """优惠活动数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_deal_id(self, deal_id: str) -> Optional[DealDB]:
        """根据活动ID获取活动"""
        result = await self.db.execute(
            select(DealDB).where(DealDB.deal_id == deal_id)
        )
        return result.scalar_one_or_none()

    async def get_by_short_code(self, short_code: str) -> Optional[DealDB]:
        """根据短码获取活动"""
        result = await self.db.execute(
            select(DealDB).where(DealDB.short_code == short_code)
        )
        return result.scalar_one_or_none()

    async def short_code_exists(self, short_code: str) -> bool:
        """短码是否已被占用"""
        result = await self.db.execute(
            select(DealDB.deal_id).where(DealDB.short_code == short_code).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def get_for_update(self, deal_id: str) -> Optional[DealDB]:
        """加行锁读取活动, 事务结束前其他核销请求会等待"""
        result = await self.db.execute(
            select(DealDB).where(DealDB.deal_id == deal_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def create(self, deal_data: Dict[str, Any]) -> DealDB:
        """
        创建活动
        在savepoint中flush, 短码唯一约束冲突时只回滚这一次插入
        """
        deal = DealDB(deal_id=str(uuid.uuid4()), **deal_data)
        async with self.db.begin_nested():
            self.db.add(deal)
            await self.db.flush()
        return deal

    async def update(self, deal_id: str, changes: Dict[str, Any]) -> Optional[DealDB]:
        """只更新传入的字段"""
        if changes:
            await self.db.execute(
                update(DealDB)
                .where(DealDB.deal_id == deal_id)
                .values(**changes, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        return await self.refresh(deal_id)

    async def refresh(self, deal_id: str) -> Optional[DealDB]:
        """重新从数据库读取, 跳过session中的旧对象"""
        result = await self.db.execute(
            select(DealDB)
            .where(DealDB.deal_id == deal_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_by_merchant(
        self,
        merchant_id: str,
        limit: int = 50,
        offset: int = 0,
        include_inactive: bool = True
    ) -> List[DealDB]:
        """获取商家的活动列表, 最新的在前"""
        query = select(DealDB).where(DealDB.merchant_id == merchant_id)
        if not include_inactive:
            query = query.where(DealDB.is_active.is_(True))
        query = query.order_by(desc(DealDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def get_caps(self, deal_ids: List[str]) -> Dict[str, Optional[int]]:
        """批量获取活动的核销上限"""
        if not deal_ids:
            return {}
        result = await self.db.execute(
            select(DealDB.deal_id, DealDB.max_redemptions).where(DealDB.deal_id.in_(deal_ids))
        )
        return {row.deal_id: row.max_redemptions for row in result.fetchall()}

    def to_model(self, db_deal: DealDB) -> Deal:
        """转换为Pydantic模型"""
        return Deal(
            deal_id=db_deal.deal_id,
            merchant_id=db_deal.merchant_id,
            short_code=db_deal.short_code,
            title=db_deal.title,
            description=db_deal.description or "",
            discount_type=db_deal.discount_type,
            discount_value=db_deal.discount_value,
            original_price=db_deal.original_price,
            currency=db_deal.currency,
            starts_at=db_deal.starts_at,
            ends_at=db_deal.ends_at,
            max_redemptions=db_deal.max_redemptions,
            image_url=db_deal.image_url,
            reposted_from_id=db_deal.reposted_from_id,
            is_active=db_deal.is_active,
            created_at=db_deal.created_at,
            updated_at=db_deal.updated_at
        )
