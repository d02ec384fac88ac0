"""
商家服务: 注册商家, 以及把身份服务提供的用户ID解析为调用方身份
"""

import logging
from typing import Optional

from dealina.core.authorization import Principal
from dealina.core.config import Settings, settings
from dealina.core.exceptions import AuthenticationError, ConflictError
from dealina.models.merchant import Merchant, MerchantCreate
from dealina.repositories.merchant_repository import MerchantRepository

logger = logging.getLogger(__name__)


class MerchantService:
    """商家业务服务"""

    def __init__(self, merchant_repo: MerchantRepository, config: Optional[Settings] = None):
        self.merchant_repo = merchant_repo
        self.config = config or settings

    async def resolve_principal(self, user_id: Optional[str]) -> Principal:
        """
        解析调用方身份
        演示模式下未登录请求使用配置的演示商家; 否则未登录直接拒绝
        """
        if user_id:
            merchant = await self.merchant_repo.get_by_user_id(user_id)
            return Principal(
                user_id=user_id,
                merchant_id=merchant.merchant_id if merchant else None
            )

        if self.config.demo_mode:
            logger.info(f"演示模式, 使用演示商家: {self.config.demo_merchant_id}")
            return Principal(merchant_id=self.config.demo_merchant_id, is_demo=True)

        raise AuthenticationError("请先登录", code="unauthenticated")

    async def register(self, user_id: str, merchant_data: MerchantCreate) -> Merchant:
        """当前用户注册为商家, 每个用户只能注册一次"""
        existing = await self.merchant_repo.get_by_user_id(user_id)
        if existing:
            raise ConflictError("该用户已是商家", code="MerchantExists",
                                details={"merchant_id": existing.merchant_id})

        db_merchant = await self.merchant_repo.create(user_id, merchant_data.name)
        logger.info(f"商家已注册: {db_merchant.merchant_id} user={user_id}")
        return self.merchant_repo.to_model(db_merchant)
