"""
数据模型包初始化文件
"""

from .deal import (
    Deal,
    DealCreate,
    DealUpdate,
    DealResponse,
    DiscountType,
    Availability,
    AvailabilityBatchRequest
)
from .merchant import Merchant, MerchantCreate
from .redemption import (
    Redemption,
    RedemptionStatus,
    RedemptionResponse,
    RedemptionPreview,
    PreviewState,
    PreviewDeal,
    ConfirmRequest,
    CodeRequest,
    RedeemedRow,
    QrPayload
)

__all__ = [
    "Deal",
    "DealCreate",
    "DealUpdate",
    "DealResponse",
    "DiscountType",
    "Availability",
    "AvailabilityBatchRequest",
    "Merchant",
    "MerchantCreate",
    "Redemption",
    "RedemptionStatus",
    "RedemptionResponse",
    "RedemptionPreview",
    "PreviewState",
    "PreviewDeal",
    "ConfirmRequest",
    "CodeRequest",
    "RedeemedRow",
    "QrPayload"
]
