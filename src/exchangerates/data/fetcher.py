"""
区间获取器
缓存查询、覆盖检查、上游获取、解析与回写
"""

import asyncio
from datetime import date, datetime
from typing import Any, Dict, Optional

from loguru import logger

from ..exceptions import UpstreamProtocolError
from .cache.base import CacheBackend
from .models import RateSeries, cache_key, normalize_date
from .providers import RateProvider
from .ttl import ttl_for


def parse_timeseries(base: str, symbol: str, payload: Any) -> RateSeries:
    """
    解析上游 timeseries 响应

    无法解析的日期、缺少该货币或数值非法的日期直接跳过，
    只有整体结构不对时才报错。

    Args:
        base: 基础货币
        symbol: 报价货币
        payload: 上游 JSON

    Returns:
        RateSeries 对象
    """
    if not isinstance(payload, dict):
        raise UpstreamProtocolError(f"响应格式错误: 期望 JSON 对象，实际为 {type(payload).__name__}")

    rates = payload.get("rates")
    if not isinstance(rates, dict):
        raise UpstreamProtocolError(f"响应中缺少 rates 字段: {list(payload.keys())}")

    symbol = symbol.upper()
    pairs = []
    skipped = 0

    for raw_when, values in rates.items():
        try:
            when = datetime.strptime(raw_when, "%Y-%m-%d").date()
        except (TypeError, ValueError):
            skipped += 1
            continue

        if not isinstance(values, dict):
            skipped += 1
            continue

        rate = values.get(symbol)
        if isinstance(rate, bool) or not isinstance(rate, (int, float)):
            skipped += 1
            continue

        pairs.append((when, float(rate)))

    if skipped:
        logger.debug(f"{base}/{symbol} 跳过 {skipped} 个无效数据点")

    return RateSeries.build(base, symbol, pairs)


class RangeFetcher:
    """
    区间获取器

    缓存按货币对存整条序列，不按请求区间。命中后只检查请求的
    两个端点日期是否都在序列中，不校验中间每一天是否齐全。
    """

    def __init__(
        self,
        provider: RateProvider,
        cache: CacheBackend,
        single_flight: bool = False,
    ):
        """
        Args:
            provider: 上游数据源
            cache: 共享缓存实例
            single_flight: 是否合并同一货币对的并发未命中请求
        """
        self.provider = provider
        self.cache = cache
        self.single_flight = single_flight
        self._inflight: Dict[str, "asyncio.Future[RateSeries]"] = {}

    async def fetch_range(self, base: str, symbol: str, start, end) -> RateSeries:
        """
        获取 [start, end] 区间的汇率序列

        Args:
            base: 基础货币
            symbol: 报价货币
            start: 开始日期（date 或 datetime）
            end: 结束日期（date 或 datetime）

        Returns:
            RateSeries 对象（命中缓存时可能比请求区间更宽）
        """
        base = base.upper()
        symbol = symbol.upper()
        start_day = normalize_date(start)
        end_day = normalize_date(end)
        key = cache_key(base, symbol)

        cached = await self._lookup(key, start_day, end_day)
        if cached is not None:
            return cached

        if not self.single_flight:
            return await self._refresh(key, base, symbol, start_day, end_day)
        return await self._refresh_shared(key, base, symbol, start_day, end_day)

    async def _lookup(self, key: str, start_day: date, end_day: date) -> Optional[RateSeries]:
        series, found = await self.cache.get(key)
        if not found:
            return None

        # TODO: 只检查端点，中间缺失的日期不会触发重新获取；需要时改为按区间合并子序列
        if series.contains(start_day) and series.contains(end_day):
            logger.debug(f"从缓存获取 {key} 汇率 ({len(series)} 条)")
            return series

        logger.debug(f"{key} 缓存未覆盖 {start_day} ~ {end_day}，重新获取")
        return None

    async def _refresh(self, key: str, base: str, symbol: str, start_day: date, end_day: date) -> RateSeries:
        payload = await self.provider.fetch_timeseries(base, [symbol], start_day, end_day)
        series = parse_timeseries(base, symbol, payload)

        ttl = ttl_for(series)
        admitted = await self.cache.set(key, series, series.cost, ttl)
        if admitted:
            logger.debug(f"缓存 {key}: {len(series)} 条, cost={series.cost}, ttl={ttl}")
        else:
            logger.debug(f"缓存未接纳 {key}，下次请求将重新获取")

        return series

    async def _refresh_shared(self, key: str, base: str, symbol: str, start_day: date, end_day: date) -> RateSeries:
        """同一货币对只保留一个进行中的上游请求"""
        pending = self._inflight.get(key)
        if pending is not None:
            try:
                series = await asyncio.shield(pending)
            except asyncio.CancelledError:
                if not pending.cancelled():
                    raise
                series = None

            if series is not None and series.contains(start_day) and series.contains(end_day):
                return series
            return await self._refresh(key, base, symbol, start_day, end_day)

        future = asyncio.get_running_loop().create_future()
        # 没有等待者时避免 "exception was never retrieved"
        future.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._inflight[key] = future

        try:
            series = await self._refresh(key, base, symbol, start_day, end_day)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(series)
            return series
        finally:
            if self._inflight.get(key) is future:
                del self._inflight[key]
