from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, AsyncEngine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy import event, text
from typing import AsyncGenerator, Optional
import logging

from dealina.core.config import settings

logger = logging.getLogger(__name__)

# 创建基础模型类
Base = declarative_base()

# 全局数据库引擎
engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None


def enable_sqlite_transactions(sqlite_engine: AsyncEngine, begin_statement: str = "BEGIN") -> AsyncEngine:
    """
    让SQLite由SQLAlchemy自己发出BEGIN, savepoint才能正常工作
    begin_statement 可传 "BEGIN IMMEDIATE" 让写事务串行执行
    """
    @event.listens_for(sqlite_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql(begin_statement)

    return sqlite_engine


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """根据URL创建异步引擎, SQLite使用StaticPool共享同一个连接"""
    if database_url.startswith("sqlite"):
        return enable_sqlite_transactions(create_async_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        ))

    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,  # 连接前ping检查
        pool_recycle=3600,   # 连接回收时间1小时
    )


async def init_database() -> None:
    """初始化数据库连接"""
    global engine, async_session_maker

    try:
        engine = build_engine(settings.database_url_computed, echo=settings.debug)

        # 创建异步session工厂
        async_session_maker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        logger.info("数据库连接初始化成功")

    except Exception as e:
        logger.error(f"数据库连接初始化失败: {e}")
        raise


async def create_tables() -> None:
    """创建所有数据表"""
    # 导入数据库模型以确保表被注册到Base.metadata
    from dealina.models.database import MerchantDB, DealDB, RedemptionDB  # noqa: F401

    if engine is None:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("数据表创建完成")


async def close_database() -> None:
    """关闭数据库连接"""
    global engine

    if engine:
        await engine.dispose()
        logger.info("数据库连接已关闭")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话依赖注入函数"""
    if not async_session_maker:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")

    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


class DatabaseService:
    """数据库服务类"""

    @property
    def engine(self):
        return engine

    async def health_check(self) -> dict:
        """数据库健康检查"""
        try:
            if not self.engine:
                return {"status": "error", "message": "数据库引擎未初始化"}

            # 执行简单查询测试连接
            async with self.engine.begin() as conn:
                result = await conn.execute(text("SELECT 1"))
                row = result.fetchone()

            return {
                "status": "healthy",
                "message": "数据库连接正常",
                "test_query_result": row[0] if row else None
            }

        except Exception as e:
            return {
                "status": "error",
                "message": f"数据库连接失败: {str(e)}"
            }


# 全局数据库服务实例
database_service = DatabaseService()
