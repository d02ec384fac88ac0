"""
统一的授权策略
所有需要商家身份的操作在进入业务逻辑前都通过这里判断 (principal, resource, action)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from dealina.core.exceptions import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)


class Action(str, Enum):
    """受控操作"""
    READ_DEAL = "read_deal"
    ISSUE_REDEMPTION = "issue_redemption"
    CREATE_DEAL = "create_deal"
    UPDATE_DEAL = "update_deal"
    DELETE_DEAL = "delete_deal"
    REPOST_DEAL = "repost_deal"
    PREVIEW_REDEMPTION = "preview_redemption"
    CONFIRM_REDEMPTION = "confirm_redemption"
    VIEW_REDEMPTIONS = "view_redemptions"
    LIST_DEALS = "list_deals"


# 顾客侧操作, 不需要商家身份
PUBLIC_ACTIONS = {Action.READ_DEAL, Action.ISSUE_REDEMPTION}

# 不针对具体资源, 只要求是商家
MERCHANT_ACTIONS = {Action.CREATE_DEAL, Action.LIST_DEALS, Action.VIEW_REDEMPTIONS}


@dataclass(frozen=True)
class Principal:
    """已认证的调用方"""
    user_id: Optional[str] = None
    merchant_id: Optional[str] = None
    is_demo: bool = False

    @property
    def is_merchant(self) -> bool:
        return self.merchant_id is not None


class AuthorizationPolicy:
    """授权策略: 资源的 merchant_id 必须与调用方商家一致"""

    def evaluate(self, principal: Optional[Principal], resource: Any, action: Action) -> bool:
        if action in PUBLIC_ACTIONS:
            return True
        if principal is None or not principal.is_merchant:
            return False
        if action in MERCHANT_ACTIONS:
            return True
        owner_id = getattr(resource, "merchant_id", None)
        return owner_id is not None and owner_id == principal.merchant_id

    def require(self, principal: Optional[Principal], resource: Any, action: Action) -> None:
        """不允许时抛出异常: 未认证401, 非所有者403"""
        if action not in PUBLIC_ACTIONS and (principal is None or (principal.user_id is None and not principal.is_demo)):
            raise AuthenticationError("请先登录", code="unauthenticated")

        if not self.evaluate(principal, resource, action):
            logger.warning(
                f"拒绝操作 {action.value}: user={principal.user_id if principal else None} "
                f"merchant={principal.merchant_id if principal else None}"
            )
            if principal is not None and not principal.is_merchant:
                raise AuthorizationError("当前账号不是商家", code="MerchantNotFound")
            raise AuthorizationError("无权操作该资源", code="NotOwner")


# 全局授权策略实例
authorization_policy = AuthorizationPolicy()
