"""
兑换记录相关数据模型
"""

import json
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, model_validator
from enum import Enum

from dealina.core.clock import to_naive_utc
from dealina.core.exceptions import ValidationError


class RedemptionStatus(str, Enum):
    """兑换状态枚举, 只能从 issued 变为 redeemed"""
    ISSUED = "issued"
    REDEEMED = "redeemed"


class PreviewState(str, Enum):
    """商家扫码预览状态"""
    READY = "READY"
    DEAL_NOT_STARTED = "DEAL_NOT_STARTED"
    DEAL_ENDED = "DEAL_ENDED"
    CODE_EXPIRED = "CODE_EXPIRED"
    ALREADY_REDEEMED = "ALREADY_REDEEMED"
    SOLD_OUT = "SOLD_OUT"


class Redemption(BaseModel):
    """兑换记录"""

    redemption_id: str = Field(..., description="兑换记录ID")
    deal_id: str = Field(..., description="活动ID")
    merchant_id: str = Field(..., description="商家ID")
    code: str = Field(..., description="兑换码")
    status: RedemptionStatus = Field(default=RedemptionStatus.ISSUED)
    device_hash: Optional[str] = Field(None, exclude=True)
    created_at: datetime
    expires_at: Optional[datetime] = None
    redeemed_at: Optional[datetime] = None

    @property
    def is_redeemed(self) -> bool:
        return self.redeemed_at is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class RedemptionResponse(Redemption):
    """领取兑换码响应"""

    reused: bool = Field(default=False, description="是否复用了同设备未过期的兑换码")
    qr_payload: Optional[str] = Field(None, description="二维码内容")


class CodeRequest(BaseModel):
    """商家预览请求"""

    code: str = Field(..., min_length=1, max_length=64)


class ConfirmRequest(BaseModel):
    """核销请求, code 和 redemption_id 至少提供一个"""

    code: Optional[str] = Field(None, max_length=64)
    redemption_id: Optional[str] = Field(None, max_length=36)

    @model_validator(mode="after")
    def require_identifier(self):
        if not (self.code or "").strip() and not self.redemption_id:
            raise ValueError("缺少兑换码或兑换记录ID")
        return self


class PreviewDeal(BaseModel):
    deal_id: str
    title: str
    starts_at: datetime
    ends_at: datetime
    discount_type: str
    discount_value: float
    max_redemptions: Optional[int] = None


class RedemptionPreview(BaseModel):
    """扫码预览结果, 不修改任何状态"""

    state: PreviewState
    can_redeem: bool
    code: str
    expires_at: Optional[datetime] = None
    redeemed_at: Optional[datetime] = None
    deal: PreviewDeal


class RedeemedRow(BaseModel):
    """商家最近核销记录"""

    redemption_id: str
    code: str
    redeemed_at: datetime
    deal_id: str
    deal_title: str
    discount_type: str
    discount_value: float


class QrPayload(BaseModel):
    """
    二维码内容
    格式: {"type":"DEAL","dealId":"<id>","expiresAt":"<ISO-8601>"}
    """

    type: str = "DEAL"
    deal_id: str
    expires_at: Optional[datetime] = None

    def to_text(self) -> str:
        payload = {"type": self.type, "dealId": self.deal_id}
        if self.expires_at is not None:
            payload["expiresAt"] = to_naive_utc(self.expires_at).isoformat(timespec="milliseconds") + "Z"
        return json.dumps(payload, separators=(",", ":"))

    @classmethod
    def parse(cls, raw: str) -> "QrPayload":
        """解析扫码得到的文本"""
        text = (raw or "").replace("\r\n", "\n").strip()
        if not text:
            raise ValidationError("二维码内容为空", code="qr_empty")

        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            raise ValidationError("二维码内容不是合法JSON", code="qr_invalid")

        if not isinstance(data, dict) or data.get("type") != "DEAL" or not data.get("dealId"):
            raise ValidationError("不是有效的优惠二维码", code="qr_invalid")

        expires_at = None
        raw_expiry = data.get("expiresAt")
        if raw_expiry:
            try:
                expires_at = datetime.fromisoformat(str(raw_expiry).replace("Z", "+00:00"))
            except ValueError:
                raise ValidationError("二维码过期时间无效", code="qr_invalid_expiry")
            expires_at = to_naive_utc(expires_at)

        return cls(deal_id=str(data["dealId"]), expires_at=expires_at)
