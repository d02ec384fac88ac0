"""
仓库包初始化文件 - 数据库访问层
"""

from .merchant_repository import MerchantRepository
from .deal_repository import DealRepository
from .redemption_repository import RedemptionRepository

__all__ = [
    "MerchantRepository",
    "DealRepository",
    "RedemptionRepository"
]
