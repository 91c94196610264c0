"""
exchangerates - 历史汇率时间序列获取与缓存

从上游 HTTP 接口获取货币对的历史汇率，按成本预算与自适应过期时间缓存，
并发执行批量区间查询。
"""

from .data import (
    CacheBackend,
    CostWeightedCache,
    ExchangeRateHostProvider,
    RangeFetcher,
    RateFrame,
    RateProvider,
    RateSeries,
    ttl_for,
)
from .exceptions import ExchangeRatesError, QueryParseError, TransportError, UpstreamProtocolError
from .factory import build_cache, build_dispatcher
from .query import QueryDispatcher, QueryResult, RateQuery

__version__ = "0.1.0"

__all__ = [
    "CacheBackend",
    "CostWeightedCache",
    "ExchangeRateHostProvider",
    "RangeFetcher",
    "RateFrame",
    "RateProvider",
    "RateSeries",
    "ttl_for",
    "ExchangeRatesError",
    "QueryParseError",
    "TransportError",
    "UpstreamProtocolError",
    "build_cache",
    "build_dispatcher",
    "QueryDispatcher",
    "QueryResult",
    "RateQuery",
]
