"""
商家数据模型
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class Merchant(BaseModel):
    merchant_id: str
    user_id: str
    name: str
    created_at: Optional[datetime] = None


class MerchantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
