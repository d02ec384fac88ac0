"""
数据库模型包初始化文件
"""

from .merchant_db import MerchantDB
from .deal_db import DealDB
from .redemption_db import RedemptionDB

__all__ = [
    "MerchantDB",
    "DealDB",
    "RedemptionDB"
]
