from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from dealina.core.config import settings
from dealina.core.redis import redis_manager
from dealina.core.database import init_database, create_tables, close_database
from dealina.api.health import router as health_router
from dealina.api.merchants import router as merchants_router
from dealina.api.deals import router as deals_router
from dealina.api.availability import router as availability_router
from dealina.api.redemptions import router as redemptions_router
from dealina.api.exceptions import (
    validation_exception_handler,
    http_exception_handler,
    database_exception_handler,
    general_exception_handler,
    business_exception_handler,
    BusinessException
)

import logging

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info(f"正在启动 {settings.app_name}")

    try:
        await init_database()
        logger.info("数据库初始化成功")

        if settings.db_auto_create:
            await create_tables()

        if settings.cache_enabled:
            # 缓存只用于活动读取, Redis 不可用时降级为直接查库
            try:
                await redis_manager.init_redis()
                logger.info("Redis初始化成功")
            except Exception as e:
                logger.warning(f"Redis不可用, 已关闭活动缓存: {e}")
                settings.cache_enabled = False

        logger.info("应用启动完成")

    except Exception as e:
        logger.error(f"应用启动失败: {e}")
        raise

    yield

    logger.info("正在关闭应用")
    await close_database()
    await redis_manager.close_redis()
    logger.info("应用关闭完成")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="优惠活动兑换码服务 - 领取、库存、核销与活动重新发布",
    debug=settings.debug,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 注册路由
app.include_router(health_router)
app.include_router(merchants_router)
app.include_router(availability_router)
app.include_router(deals_router)
app.include_router(redemptions_router)

# 注册异常处理器
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)
app.add_exception_handler(BusinessException, business_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


@app.get("/")
async def root():
    """根路径"""
    return {
        "message": f"欢迎使用 {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    uvicorn.run(
        "dealina.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
