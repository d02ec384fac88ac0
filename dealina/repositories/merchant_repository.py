"""
商家数据库操作层
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealina.models.merchant import Merchant
from dealina.models.database.merchant_db import MerchantDB


class MerchantRepository:
    """商家数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_merchant_id(self, merchant_id: str) -> Optional[MerchantDB]:
        """根据商家ID获取商家"""
        result = await self.db.execute(
            select(MerchantDB).where(MerchantDB.merchant_id == merchant_id)
        )
        return result.scalar_one_or_none()

    async def get_by_user_id(self, user_id: str) -> Optional[MerchantDB]:
        """根据登录用户ID获取商家"""
        result = await self.db.execute(
            select(MerchantDB).where(MerchantDB.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def create(self, user_id: str, name: str) -> MerchantDB:
        """创建商家"""
        merchant = MerchantDB(
            merchant_id=str(uuid.uuid4()),
            user_id=user_id,
            name=name.strip(),
        )
        self.db.add(merchant)
        await self.db.flush()
        return merchant

    def to_model(self, db_merchant: MerchantDB) -> Merchant:
        """转换为Pydantic模型"""
        return Merchant(
            merchant_id=db_merchant.merchant_id,
            user_id=db_merchant.user_id,
            name=db_merchant.name,
            created_at=db_merchant.created_at,
        )
