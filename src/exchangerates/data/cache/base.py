"""
缓存后端基类
定义带成本计费的缓存接口
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple


class CacheBackend(ABC):
    """
    缓存后端抽象基类

    每个条目声明一个成本，后端在全局预算内自行决定是否接纳。
    所有操作都不抛出错误，最坏情况是未命中。
    """

    def __init__(self, default_ttl: Optional[timedelta] = None):
        """
        初始化缓存后端

        Args:
            default_ttl: 默认过期时间（None 表示永不过期）
        """
        self.default_ttl = default_ttl

    @abstractmethod
    async def get(self, key: str) -> Tuple[Optional[Any], bool]:
        """
        获取缓存值

        Args:
            key: 缓存键

        Returns:
            (值, 是否命中)，不存在或已过期返回 (None, False)
        """

    @abstractmethod
    async def set(
        self,
        key: str,
        value: Any,
        cost: int,
        ttl: Optional[timedelta] = None,
    ) -> bool:
        """
        写入缓存

        Args:
            key: 缓存键
            value: 缓存值
            cost: 条目成本（字节估算）
            ttl: 过期时间（None 使用默认值）

        Returns:
            是否被接纳；未接纳不是错误，下次读取按未命中处理
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """删除缓存，返回键是否存在"""

    @abstractmethod
    async def clear(self) -> int:
        """
        清空所有缓存

        Returns:
            删除的条目数
        """

    @abstractmethod
    async def cleanup_expired(self) -> int:
        """
        清理过期缓存

        Returns:
            清理的条目数
        """

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        """获取缓存统计信息"""

    async def exists(self, key: str) -> bool:
        """检查缓存是否存在且未过期"""
        _, found = await self.get(key)
        return found

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass
