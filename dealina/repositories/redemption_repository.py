"""
兑换记录数据库操作层
核销依赖条件更新 (redeemed_at IS NULL) 保证同一兑换码只成功一次
"""

import uuid
from datetime import datetime
from typing import List, Optional, Dict, Any

from sqlalchemy import select, update, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from dealina.models.redemption import Redemption, RedemptionStatus
from dealina.models.database.deal_db import DealDB
from dealina.models.database.redemption_db import RedemptionDB


class RedemptionRepository:
    """兑换记录数据库操作类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_code(self, code: str) -> Optional[RedemptionDB]:
        """根据兑换码获取记录"""
        result = await self.db.execute(
            select(RedemptionDB)
            .where(RedemptionDB.code == code)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_redemption_id(self, redemption_id: str) -> Optional[RedemptionDB]:
        """根据记录ID获取"""
        result = await self.db.execute(
            select(RedemptionDB)
            .where(RedemptionDB.redemption_id == redemption_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def code_exists(self, code: str) -> bool:
        """兑换码是否已被占用"""
        result = await self.db.execute(
            select(RedemptionDB.redemption_id).where(RedemptionDB.code == code).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def create(self, redemption_data: Dict[str, Any]) -> RedemptionDB:
        """创建兑换记录, 唯一约束冲突只回滚本次插入"""
        redemption = RedemptionDB(
            redemption_id=str(uuid.uuid4()),
            status=RedemptionStatus.ISSUED.value,
            **redemption_data
        )
        async with self.db.begin_nested():
            self.db.add(redemption)
            await self.db.flush()
        return redemption

    async def mark_redeemed(self, redemption_id: str, redeemed_at: datetime) -> bool:
        """
        条件核销: 只有 redeemed_at 仍为空时才更新
        返回是否由本次调用完成核销
        """
        result = await self.db.execute(
            update(RedemptionDB)
            .where(
                and_(
                    RedemptionDB.redemption_id == redemption_id,
                    RedemptionDB.redeemed_at.is_(None)
                )
            )
            .values(redeemed_at=redeemed_at, status=RedemptionStatus.REDEEMED.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def count_redeemed(self, deal_id: str) -> int:
        """活动已核销数量"""
        result = await self.db.execute(
            select(func.count(RedemptionDB.redemption_id)).where(
                and_(
                    RedemptionDB.deal_id == deal_id,
                    RedemptionDB.redeemed_at.is_not(None)
                )
            )
        )
        return result.scalar() or 0

    async def count_redeemed_by_deals(self, deal_ids: List[str]) -> Dict[str, int]:
        """批量统计已核销数量, 一次分组查询"""
        if not deal_ids:
            return {}
        result = await self.db.execute(
            select(
                RedemptionDB.deal_id,
                func.count(RedemptionDB.redemption_id).label("redeemed_count")
            ).where(
                and_(
                    RedemptionDB.deal_id.in_(deal_ids),
                    RedemptionDB.redeemed_at.is_not(None)
                )
            ).group_by(RedemptionDB.deal_id)
        )
        return {row.deal_id: row.redeemed_count for row in result.fetchall()}

    async def find_active_for_device(
        self,
        deal_id: str,
        device_hash: str,
        now: datetime
    ) -> Optional[RedemptionDB]:
        """同一设备在该活动下未核销且未过期的兑换码"""
        result = await self.db.execute(
            select(RedemptionDB).where(
                and_(
                    RedemptionDB.deal_id == deal_id,
                    RedemptionDB.device_hash == device_hash,
                    RedemptionDB.redeemed_at.is_(None),
                    RedemptionDB.expires_at > now
                )
            ).order_by(desc(RedemptionDB.created_at)).limit(1)
        )
        return result.scalar_one_or_none()

    async def count_active_for_device(self, device_hash: str, now: datetime) -> int:
        """设备在所有活动下持有的有效兑换码数量"""
        result = await self.db.execute(
            select(func.count(RedemptionDB.redemption_id)).where(
                and_(
                    RedemptionDB.device_hash == device_hash,
                    RedemptionDB.redeemed_at.is_(None),
                    RedemptionDB.expires_at > now
                )
            )
        )
        return result.scalar() or 0

    async def latest_created_at_for_device(self, deal_id: str, device_hash: str) -> Optional[datetime]:
        """设备在该活动下最近一次领取时间"""
        result = await self.db.execute(
            select(func.max(RedemptionDB.created_at)).where(
                and_(
                    RedemptionDB.deal_id == deal_id,
                    RedemptionDB.device_hash == device_hash
                )
            )
        )
        return result.scalar()

    async def list_recent_redeemed(self, merchant_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """商家最近的核销记录"""
        query = select(
            RedemptionDB,
            DealDB.title,
            DealDB.discount_type,
            DealDB.discount_value
        ).join(
            DealDB, RedemptionDB.deal_id == DealDB.deal_id
        ).where(
            and_(
                DealDB.merchant_id == merchant_id,
                RedemptionDB.redeemed_at.is_not(None)
            )
        ).order_by(desc(RedemptionDB.redeemed_at)).limit(limit)

        result = await self.db.execute(query)
        return [
            {
                "redemption_id": row.RedemptionDB.redemption_id,
                "code": row.RedemptionDB.code,
                "redeemed_at": row.RedemptionDB.redeemed_at,
                "deal_id": row.RedemptionDB.deal_id,
                "deal_title": row.title,
                "discount_type": row.discount_type,
                "discount_value": float(row.discount_value or 0)
            }
            for row in result.fetchall()
        ]

    def to_model(self, db_redemption: RedemptionDB) -> Redemption:
        """转换为Pydantic模型"""
        return Redemption(
            redemption_id=db_redemption.redemption_id,
            deal_id=db_redemption.deal_id,
            merchant_id=db_redemption.merchant_id,
            code=db_redemption.code,
            status=db_redemption.status,
            device_hash=db_redemption.device_hash,
            created_at=db_redemption.created_at,
            expires_at=db_redemption.expires_at,
            redeemed_at=db_redemption.redeemed_at
        )
