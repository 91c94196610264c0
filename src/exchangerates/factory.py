"""
组件装配
按配置创建数据源、共享缓存、获取器与调度器
"""

from typing import Optional

from loguru import logger

from .data.cache import CostWeightedCache
from .data.fetcher import RangeFetcher
from .data.providers import RateProvider
from .data.providers.exchangerate_host import ExchangeRateHostProvider
from .query.dispatcher import QueryDispatcher
from .utils.config import Config, get_config
from .utils.logger import setup_logger


def build_cache(config: Optional[Config] = None) -> CostWeightedCache:
    """创建进程内共享的缓存实例"""
    config = config or get_config()
    return CostWeightedCache(
        max_cost=config.cache.max_cost,
        sample_size=config.cache.sample_size,
        num_counters=config.cache.num_counters,
    )


def build_dispatcher(
    config: Optional[Config] = None,
    provider: Optional[RateProvider] = None,
    cache: Optional[CostWeightedCache] = None,
    configure_logging: bool = True,
) -> QueryDispatcher:
    """
    按配置装配调度器

    Args:
        config: 配置（默认全局配置）
        provider: 数据源（默认 ExchangeRateHostProvider）
        cache: 缓存（默认新建，多个调度器可传入同一实例共享）
        configure_logging: 是否按 config.logging 安装日志输出

    Returns:
        QueryDispatcher 对象
    """
    config = config or get_config()
    if configure_logging:
        setup_logger(config.logging)

    if provider is None:
        provider = ExchangeRateHostProvider(
            base_url=config.upstream.base_url,
            access_key=config.upstream.access_key or None,
            timeout=config.upstream.timeout_seconds,
        )
    if cache is None:
        cache = build_cache(config)

    fetcher = RangeFetcher(provider, cache, single_flight=config.dispatcher.single_flight)
    logger.info(
        f"调度器就绪: 数据源={provider.name}, 缓存预算={cache.max_cost} 字节, "
        f"超时={config.dispatcher.timeout_seconds}, single_flight={config.dispatcher.single_flight}"
    )
    return QueryDispatcher(fetcher, timeout=config.dispatcher.timeout_seconds)
