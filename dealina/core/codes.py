"""
短码生成器
生成便于人工输入的短码, 去掉容易混淆的字符(0/O, 1/I)
"""

import re
import secrets
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError

from dealina.core.exceptions import ConflictError

logger = logging.getLogger(__name__)

# 去掉 0 O 1 I, 共32个字符
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
DEFAULT_CODE_LENGTH = 5
DEFAULT_MAX_ATTEMPTS = 3

_CODE_LIKE = re.compile(r"^[A-Z0-9]{4,12}$")
_NON_CODE_CHARS = re.compile(r"[^A-Z0-9]")


def generate_short_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """生成指定长度的短码, 不保证唯一"""
    if length < 1:
        raise ValueError("短码长度必须大于0")
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(raw: Optional[str]) -> str:
    """规范化用户输入的短码: 去空白、转大写、去掉非字母数字"""
    return _NON_CODE_CHARS.sub("", str(raw or "").strip().upper())


def is_code_like(code: str) -> bool:
    """是否符合短码格式"""
    return bool(_CODE_LIKE.match(code))


T = TypeVar("T")


def is_unique_violation(error: IntegrityError, column: str) -> bool:
    """是否是指定列的唯一约束冲突; PostgreSQL 看 SQLSTATE 23505, SQLite 看错误信息"""
    message = str(error.orig).lower()
    unique = getattr(error.orig, "sqlstate", None) == "23505" or "unique" in message
    return unique and column.lower() in message


async def create_with_unique_code(
    exists: Callable[[str], Awaitable[bool]],
    create: Callable[[str], Awaitable[T]],
    length: int = DEFAULT_CODE_LENGTH,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    column: str = "code",
) -> T:
    """
    生成短码并创建记录

    每次生成后先用 exists 检查是否被占用, 再调用 create 写入。
    先查再写不是原子的, 并发下以数据库唯一约束为准, column 列的唯一约束冲突同样计入重试次数,
    其他完整性错误(如外键不存在)直接抛出。
    max_attempts 次全部冲突时抛出 ConflictError(ShortCodeExhausted)。
    """
    for attempt in range(1, max_attempts + 1):
        code = generate_short_code(length)
        if await exists(code):
            logger.info(f"短码已存在, 重新生成 (第{attempt}次): {code}")
            continue
        try:
            return await create(code)
        except IntegrityError as e:
            if not is_unique_violation(e, column):
                raise
            logger.info(f"短码唯一约束冲突, 重新生成 (第{attempt}次): {code}")

    logger.error(f"短码生成失败, 已重试{max_attempts}次")
    raise ConflictError(
        "短码生成失败, 请稍后重试",
        code="ShortCodeExhausted",
        details={"attempts": max_attempts}
    )
