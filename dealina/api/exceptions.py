"""
异常处理器
把业务异常和框架异常统一转换为 {"ok": false, "error": ..., "message": ...} 格式
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dealina.core.exceptions import BusinessException, RateLimitedError

logger = logging.getLogger(__name__)

__all__ = [
    "BusinessException",
    "validation_exception_handler",
    "http_exception_handler",
    "database_exception_handler",
    "business_exception_handler",
    "general_exception_handler",
]


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """请求参数校验失败"""
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error": "validation_error",
            "message": "请求参数错误",
            "details": jsonable_encoder(exc.errors(), custom_encoder={Exception: str})
        }
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """框架抛出的HTTP异常"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": "http_error", "message": str(exc.detail)},
        headers=getattr(exc, "headers", None)
    )


async def business_exception_handler(request: Request, exc: BusinessException) -> JSONResponse:
    """业务异常"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} 业务异常: {exc.code} {exc.message}")

    headers = None
    if isinstance(exc, RateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(exc.to_dict()),
        headers=headers
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """数据库异常, 不向调用方暴露细节"""
    logger.error(f"{request.method} {request.url.path} 数据库异常: {exc}")
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "server_error", "message": "服务暂时不可用, 请稍后重试"}
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """未处理的异常"""
    logger.exception(f"{request.method} {request.url.path} 未处理异常: {exc}")
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "server_error", "message": "服务器内部错误"}
    )
