"""
配置校验测试
"""

import pytest
from pydantic import ValidationError

from dealina.core.config import Environment, Settings


class TestSettings:

    def test_defaults(self):
        config = Settings(database_url=None, demo_mode=False)
        assert config.short_code_length == 5
        assert config.repost_default_days == 7
        assert config.confirm_requires_active_deal is False
        assert config.database_url_computed.startswith("postgresql+asyncpg://")

    def test_demo_mode_requires_merchant_id(self):
        with pytest.raises(ValidationError):
            Settings(demo_mode=True, demo_merchant_id=None)

    def test_demo_mode_forbidden_in_production(self):
        with pytest.raises(ValidationError):
            Settings(demo_mode=True, demo_merchant_id="m_demo", environment=Environment.PRODUCTION)

    def test_demo_mode_in_testing(self):
        config = Settings(demo_mode=True, demo_merchant_id="m_demo", environment=Environment.TESTING)
        assert config.demo_merchant_id == "m_demo"
        assert config.is_testing

    def test_redis_url_with_password(self):
        config = Settings(redis_url=None, redis_password="secret", redis_host="cache", redis_port=6380, redis_db=2)
        assert config.redis_url_computed == "redis://:secret@cache:6380/2"
