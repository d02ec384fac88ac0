"""
服务包初始化文件
"""

from .availability_service import AvailabilityService, compute_availability
from .deal_service import DealService
from .merchant_service import MerchantService
from .redemption_service import RedemptionService

__all__ = [
    "AvailabilityService",
    "compute_availability",
    "DealService",
    "MerchantService",
    "RedemptionService"
]
