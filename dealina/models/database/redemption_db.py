"""
兑换记录数据库模型
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from dealina.core.clock import utcnow
from dealina.core.database import Base


class RedemptionDB(Base):
    """兑换记录表, 每个兑换码只能核销一次"""

    __tablename__ = "redemptions"

    redemption_id = Column(String(36), primary_key=True, comment="兑换记录ID")
    deal_id = Column(String(36), ForeignKey("deals.deal_id"), nullable=False, index=True, comment="活动ID")
    merchant_id = Column(String(36), nullable=False, index=True, comment="商家ID")
    code = Column(String(12), nullable=False, unique=True, index=True, comment="兑换码")
    status = Column(String(20), nullable=False, default="issued", comment="状态")

    # 设备指纹(sha256), 用于防刷
    device_hash = Column(String(64), index=True, comment="设备哈希")

    created_at = Column(DateTime, default=utcnow, nullable=False, comment="领取时间")
    expires_at = Column(DateTime, comment="兑换码过期时间")
    redeemed_at = Column(DateTime, comment="核销时间")

    __table_args__ = (
        Index("idx_redemptions_deal_redeemed", "deal_id", "redeemed_at"),
        {'comment': '兑换记录表'}
    )
