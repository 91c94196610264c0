"""
缓存过期策略
根据序列是否包含当天数据决定可信时长
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from .models import RateSeries, to_utc_instant, utc_midnight

# 不含当天数据时的刷新周期，容忍上游补数/修正
STALE_TTL = timedelta(minutes=5)


def until_next_utc_midnight(now: Optional[datetime] = None) -> timedelta:
    """距下一个 UTC 零点的时长"""
    now = to_utc_instant(now or datetime.now(timezone.utc))
    return utc_midnight(now.date() + timedelta(days=1)) - now


def ttl_for(series: RateSeries, now: Optional[datetime] = None) -> timedelta:
    """
    计算新获取序列的缓存时长

    包含当天（UTC 日历日）数据时可信任到下一个 UTC 零点，
    即上游下一次日更之前；否则使用 STALE_TTL。

    Args:
        series: 汇率序列
        now: 当前时间（默认 UTC 当前时间，naive 视为 UTC）

    Returns:
        过期时长
    """
    now = to_utc_instant(now or datetime.now(timezone.utc))
    if series.contains_today(now):
        return until_next_utc_midnight(now)
    return STALE_TTL
