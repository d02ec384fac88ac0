"""
优惠活动数据库模型
"""

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, ForeignKey
from dealina.core.clock import utcnow
from dealina.core.database import Base


class DealDB(Base):
    """优惠活动表"""

    __tablename__ = "deals"

    # 主键和基本信息
    deal_id = Column(String(36), primary_key=True, comment="活动ID")
    merchant_id = Column(String(36), ForeignKey("merchants.merchant_id"), nullable=False, index=True, comment="商家ID")
    short_code = Column(String(12), nullable=False, unique=True, index=True, comment="活动短码")
    title = Column(String(200), nullable=False, comment="活动标题")
    description = Column(Text, nullable=False, default="", comment="活动描述")

    # 折扣信息
    discount_type = Column(String(20), nullable=False, default="none", comment="折扣类型")
    discount_value = Column(Numeric(10, 2), nullable=False, default=0, comment="折扣值")
    original_price = Column(Numeric(10, 2), comment="原价")
    currency = Column(String(3), nullable=False, default="USD", comment="币种")

    # 有效期
    starts_at = Column(DateTime, nullable=False, index=True, comment="开始时间")
    ends_at = Column(DateTime, nullable=False, index=True, comment="结束时间")

    # 使用限制, 为空表示不限量
    max_redemptions = Column(Integer, comment="核销上限")

    image_url = Column(Text, comment="图片地址")
    reposted_from_id = Column(String(36), ForeignKey("deals.deal_id"), comment="重新发布来源活动ID")
    is_active = Column(Boolean, nullable=False, default=True, index=True, comment="是否上架")

    # 时间戳
    created_at = Column(DateTime, default=utcnow, nullable=False, comment="创建时间")
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False, comment="更新时间")

    __table_args__ = (
        {'comment': '优惠活动表'}
    )
