"""
业务异常定义
每个异常携带机器可读的错误码和对应的HTTP状态码
"""

from typing import Any, Dict, Optional


class BusinessException(Exception):
    """业务异常基类"""

    status_code: int = 400
    default_code: str = "business_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(BusinessException):
    """参数缺失或格式错误, 调用方修正后重试"""
    status_code = 400
    default_code = "validation_error"


class AuthenticationError(BusinessException):
    """未登录"""
    status_code = 401
    default_code = "unauthenticated"


class AuthorizationError(BusinessException):
    """无权操作该资源"""
    status_code = 403
    default_code = "NotOwner"


class NotFoundError(BusinessException):
    """资源不存在"""
    status_code = 404
    default_code = "not_found"


class ConflictError(BusinessException):
    """状态冲突: 已核销、已售罄、短码重试耗尽"""
    status_code = 409
    default_code = "conflict"


class NotActiveError(BusinessException):
    """不在有效期内"""
    status_code = 409
    default_code = "DealNotActive"


class RateLimitedError(BusinessException):
    """防刷限制"""
    status_code = 429
    default_code = "rate_limited"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        retry_after: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code=code, details=details)
        self.retry_after = retry_after
        self.details.setdefault("retry_after", retry_after)


class UnexpectedError(BusinessException):
    """存储或网络异常, 只读操作可由调用方决定是否重试"""
    status_code = 500
    default_code = "server_error"
