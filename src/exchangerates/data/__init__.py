"""
数据层模块
提供汇率获取、缓存和过期策略
"""

from .cache import CacheBackend, CostWeightedCache
from .fetcher import RangeFetcher, parse_timeseries
from .models import RateFrame, RateSeries, cache_key, normalize_date
from .providers import RateProvider
from .providers.exchangerate_host import ExchangeRateHostProvider
from .ttl import STALE_TTL, ttl_for

__all__ = [
    "CacheBackend",
    "CostWeightedCache",
    "RangeFetcher",
    "parse_timeseries",
    "RateFrame",
    "RateSeries",
    "cache_key",
    "normalize_date",
    "RateProvider",
    "ExchangeRateHostProvider",
    "STALE_TTL",
    "ttl_for",
]
