from pydantic_settings import BaseSettings
from pydantic import model_validator
from typing import Optional
from enum import Enum


class Environment(str, Enum):

    """运行环境枚举"""
    TESTING = "testing"
    PRODUCTION = "production"


class Settings(BaseSettings):

    # 应用基础配置
    app_name: str = "Dealina Redemption Service"
    app_version: str = "1.0.0"
    environment: Environment = Environment.TESTING
    debug: bool = False

    # 数据库配置
    database_url: Optional[str] = None
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "dealina_db"
    db_user: str = "dealina_user"
    db_password: str = "dealina_password"
    db_auto_create: bool = False

    # Redis配置 (优惠活动读缓存)
    redis_url: Optional[str] = None
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0
    cache_enabled: bool = True
    deal_cache_ttl: int = 300

    # 兑换码配置
    short_code_length: int = 5
    short_code_max_attempts: int = 3
    qr_ttl_minutes: int = 15

    # 优惠活动生命周期
    repost_default_days: int = 7

    # 防刷配置
    issue_cooldown_seconds: int = 20
    max_active_codes_per_device: int = 3

    # 库存查询超时(秒)
    availability_timeout_seconds: float = 2.0

    # 核销时是否重新校验活动有效期，默认沿用原有行为(只在领取时校验)
    confirm_requires_active_deal: bool = False

    # 演示模式: 未识别到商家时使用固定商家ID, 生产环境禁止开启
    demo_mode: bool = False
    demo_merchant_id: Optional[str] = None

    # 日志配置
    log_level: str = "INFO"

    @model_validator(mode="after")
    def validate_demo_mode(self):
        """演示模式必须显式配置商家ID, 且不能用于生产环境"""
        if self.demo_mode:
            if not self.demo_merchant_id:
                raise ValueError("demo_mode 已开启但未设置 demo_merchant_id")
            if self.environment == Environment.PRODUCTION:
                raise ValueError("生产环境不允许开启 demo_mode")
        return self

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def database_url_computed(self) -> str:
        """计算数据库URL"""
        if self.database_url:
            return self.database_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url_computed(self) -> str:
        """计算Redis URL"""
        if self.redis_url:
            return self.redis_url
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    class Config:
        env_file = ".env"
        case_sensitive = False


# 全局配置实例
settings = Settings()
