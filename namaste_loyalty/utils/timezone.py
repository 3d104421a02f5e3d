"""
统一时间处理模块

数据库统一存储 UTC 时间（不带时区信息的 naive datetime），
所有过期比较都在服务端用同一个时钟完成，不使用客户端时间。
"""
from datetime import datetime, timezone


def utc_now_naive() -> datetime:
    """
    获取当前 UTC 时间（naive，不带时区信息）

    这是数据库存储的标准格式

    Returns:
        不带时区信息的 naive datetime 对象
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
