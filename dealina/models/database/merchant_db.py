"""
商家数据库模型
"""

from sqlalchemy import Column, String, DateTime
from dealina.core.clock import utcnow
from dealina.core.database import Base


class MerchantDB(Base):
    """商家表, user_id 对应身份服务的登录用户"""

    __tablename__ = "merchants"

    merchant_id = Column(String(36), primary_key=True, comment="商家ID")
    user_id = Column(String(64), nullable=False, unique=True, index=True, comment="登录用户ID")
    name = Column(String(200), nullable=False, comment="商家名称")

    created_at = Column(DateTime, default=utcnow, nullable=False, comment="创建时间")

    __table_args__ = (
        {'comment': '商家信息表'}
    )
