"""
优惠活动相关数据模型
"""

from decimal import Decimal
from datetime import datetime, timedelta
from typing import List, Optional
from pydantic import BaseModel, Field, validator, model_validator
from enum import Enum

from dealina.core.clock import to_naive_utc


class DiscountType(str, Enum):
    """折扣类型枚举"""
    PERCENTAGE = "percentage"  # 百分比折扣 (0-100)
    FIXED_AMOUNT = "fixed_amount"  # 固定金额
    NONE = "none"  # 无折扣, 仅展示


def _check_discount(discount_type: Optional[DiscountType], discount_value: Optional[Decimal]) -> None:
    if discount_type is None or discount_value is None:
        return
    if discount_type == DiscountType.PERCENTAGE and not (Decimal("0") < discount_value <= Decimal("100")):
        raise ValueError("百分比折扣必须在0到100之间")
    if discount_type == DiscountType.FIXED_AMOUNT and discount_value <= 0:
        raise ValueError("固定金额折扣必须大于0")


class Deal(BaseModel):
    """优惠活动基础模型"""

    deal_id: str = Field(..., description="活动ID")
    merchant_id: str = Field(..., description="商家ID")
    short_code: str = Field(..., description="活动短码")
    title: str = Field(..., description="活动标题")
    description: str = Field(default="", description="活动描述")
    discount_type: DiscountType = Field(default=DiscountType.NONE, description="折扣类型")
    discount_value: Decimal = Field(default=Decimal("0"), ge=0, description="折扣值")
    original_price: Optional[Decimal] = Field(None, ge=0, description="原价")
    currency: str = Field(default="USD", description="币种")
    starts_at: datetime = Field(..., description="开始时间")
    ends_at: datetime = Field(..., description="结束时间")
    max_redemptions: Optional[int] = Field(None, ge=0, description="核销上限, 为空不限量")
    image_url: Optional[str] = Field(None, description="图片地址")
    reposted_from_id: Optional[str] = Field(None, description="重新发布来源活动ID")
    is_active: bool = Field(default=True, description="是否上架")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def has_started(self, now: datetime) -> bool:
        return self.starts_at <= now

    def has_ended(self, now: datetime) -> bool:
        return now > self.ends_at

    def is_live(self, now: datetime) -> bool:
        """是否处于有效期内且已上架"""
        return self.is_active and self.has_started(now) and not self.has_ended(now)

    def window_duration(self) -> timedelta:
        return self.ends_at - self.starts_at


class DealCreate(BaseModel):
    """创建优惠活动模型"""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=5000)
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    discount_type: Optional[DiscountType] = None
    original_price: Optional[Decimal] = Field(None, ge=0)
    currency: str = Field(default="USD", pattern=r"^[A-Z]{3}$")
    starts_at: datetime = Field(...)
    ends_at: datetime = Field(...)
    max_redemptions: Optional[int] = Field(None, ge=1)
    image_url: Optional[str] = None

    @validator('title')
    def validate_title(cls, v):
        if not v.strip():
            raise ValueError('标题不能为空')
        return v

    @validator('starts_at', 'ends_at')
    def normalize_datetime(cls, v):
        return to_naive_utc(v)

    @validator('image_url')
    def validate_image_url(cls, v):
        if v is not None and not v.strip():
            raise ValueError('图片地址不能为空字符串')
        return v

    @model_validator(mode="after")
    def derive_discount_type(self):
        """未指定折扣类型时, 折扣值大于0视为百分比折扣"""
        if self.discount_type is None:
            self.discount_type = DiscountType.PERCENTAGE if self.discount_value > 0 else DiscountType.NONE
        _check_discount(self.discount_type, self.discount_value)
        return self


class DealUpdate(BaseModel):
    """更新优惠活动模型, 只修改传入的字段"""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, ge=0)
    original_price: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[str] = Field(None, pattern=r"^[A-Z]{3}$")
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    max_redemptions: Optional[int] = Field(None, ge=1)
    image_url: Optional[str] = None

    @validator('title', 'description', 'discount_type', 'discount_value', 'currency', 'starts_at', 'ends_at')
    def reject_null(cls, v):
        if v is None:
            raise ValueError('该字段不能设置为空')
        return v

    @validator('starts_at', 'ends_at')
    def normalize_datetime(cls, v):
        return to_naive_utc(v)

    @validator('image_url')
    def validate_image_url(cls, v):
        if v is not None and not v.strip():
            raise ValueError('图片地址不能为空字符串')
        return v

    @model_validator(mode="after")
    def validate_discount(self):
        _check_discount(self.discount_type, self.discount_value)
        return self


class DealResponse(Deal):
    """优惠活动响应模型"""

    redeemed_count: Optional[int] = None
    left: Optional[int] = None
    sold_out: Optional[bool] = None

    @classmethod
    def from_deal(cls, deal: Deal, availability: Optional["Availability"] = None) -> "DealResponse":
        data = deal.model_dump()
        if availability is not None:
            data.update(
                redeemed_count=availability.redeemed_count,
                left=availability.left,
                sold_out=availability.sold_out,
            )
        return cls(**data)


class Availability(BaseModel):
    """库存视图, 根据核销上限和已核销数实时计算"""

    deal_id: str
    max_redemptions: Optional[int] = None
    redeemed_count: Optional[int] = None
    left: Optional[int] = None
    sold_out: bool = False
    status: str = Field(default="ok", description="ok 或 unknown(查询失败/超时)")


class AvailabilityBatchRequest(BaseModel):
    """批量库存查询请求"""

    ids: List[str] = Field(..., min_length=1, max_length=200)
