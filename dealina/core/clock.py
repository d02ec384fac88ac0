"""
时间工具 - 数据库统一存储不带时区的UTC时间
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """当前UTC时间(naive)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """带时区的时间转换为naive UTC, naive时间视为UTC原样返回"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
