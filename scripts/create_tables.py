"""
兑换服务数据库初始化脚本
创建数据库、数据表和部分索引; 演示模式下写入演示商家
"""

import asyncio
import sys
import traceback
from pathlib import Path

# 添加项目根目录到Python路径
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy import text
from dealina.core.config import settings
from dealina.core.database import Base

# 导入所有数据库模型以确保表被注册
from dealina.models.database import MerchantDB, DealDB, RedemptionDB  # noqa: F401


async def create_database_if_not_exists():
    """创建数据库（如果不存在）"""
    if settings.database_url:
        print("使用 DATABASE_URL, 跳过建库")
        return

    # 连接到PostgreSQL服务器（不指定数据库）
    server_url = settings.database_url_computed.replace(f"/{settings.db_name}", "/postgres")
    engine = create_async_engine(server_url, isolation_level="AUTOCOMMIT")

    async with engine.connect() as conn:
        result = await conn.execute(
            text("SELECT 1 FROM pg_database WHERE datname = :db_name"),
            {"db_name": settings.db_name}
        )

        if not result.fetchone():
            await conn.execute(text(f'CREATE DATABASE "{settings.db_name}"'))
            print(f"数据库 '{settings.db_name}' 创建成功")
        else:
            print(f"数据库 '{settings.db_name}' 已存在")

    await engine.dispose()


async def create_tables():
    """创建所有数据表"""
    engine = create_async_engine(settings.database_url_computed)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        print("所有数据表创建成功")

    await engine.dispose()


async def create_indexes():
    """PostgreSQL 部分索引, 只覆盖未核销的兑换码"""
    if not settings.database_url_computed.startswith("postgresql"):
        return

    engine = create_async_engine(settings.database_url_computed)

    indexes = [
        # 设备防刷查询
        "CREATE INDEX IF NOT EXISTS idx_redemptions_device_open ON redemptions(device_hash, expires_at) "
        "WHERE redeemed_at IS NULL;",
        # 商家核销记录
        "CREATE INDEX IF NOT EXISTS idx_redemptions_merchant_redeemed ON redemptions(merchant_id, redeemed_at DESC) "
        "WHERE redeemed_at IS NOT NULL;",
        # 商家活动列表
        "CREATE INDEX IF NOT EXISTS idx_deals_merchant_created ON deals(merchant_id, created_at DESC);",
    ]

    async with engine.begin() as conn:
        for index_sql in indexes:
            await conn.execute(text(index_sql))
        print("所有索引创建成功")

    await engine.dispose()


async def insert_demo_merchant():
    """演示模式下写入演示商家"""
    if not settings.demo_mode:
        return

    engine = create_async_engine(settings.database_url_computed)

    async with engine.begin() as conn:
        result = await conn.execute(
            text("SELECT 1 FROM merchants WHERE merchant_id = :merchant_id"),
            {"merchant_id": settings.demo_merchant_id}
        )
        if not result.fetchone():
            await conn.execute(
                text("""
                    INSERT INTO merchants (merchant_id, user_id, name, created_at)
                    VALUES (:merchant_id, :user_id, :name, CURRENT_TIMESTAMP)
                """),
                {
                    "merchant_id": settings.demo_merchant_id,
                    "user_id": f"demo:{settings.demo_merchant_id}",
                    "name": "演示商家"
                }
            )
            print(f"插入演示商家: {settings.demo_merchant_id}")
        else:
            print(f"演示商家已存在: {settings.demo_merchant_id}")

    await engine.dispose()


async def main():
    """主函数"""
    print("开始初始化兑换服务数据库...")

    try:
        await create_database_if_not_exists()
        await create_tables()
        await create_indexes()
        await insert_demo_merchant()

        print("数据库初始化完成！")

    except Exception as e:
        print(f"数据库初始化失败: {e}")
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
