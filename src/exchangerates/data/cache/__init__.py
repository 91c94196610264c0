"""
缓存系统模块
"""

from .base import CacheBackend
from .cost_cache import CostWeightedCache

__all__ = ["CacheBackend", "CostWeightedCache"]
