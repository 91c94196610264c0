"""
数据模型模块
定义汇率时间序列的数据结构
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

# 成本估算（字节）：日期结构 + float64 汇率，order 中每项一个引用
DATE_SIZE = 24
RATE_SIZE = 8
ORDER_ENTRY_SIZE = 8


def normalize_date(value) -> date:
    """
    统一转换为 UTC 日历日期

    Args:
        value: date / datetime（naive 视为 UTC，aware 先转换到 UTC）

    Returns:
        UTC 日历日期
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError(f"无法转换为日期: {value!r}")


def utc_midnight(day: date) -> datetime:
    """日期对应的 UTC 零点"""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def to_utc_instant(value) -> datetime:
    """date 取 UTC 零点，naive datetime 视为 UTC"""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return utc_midnight(value)
    raise TypeError(f"无法转换为时间: {value!r}")


def cache_key(base: str, symbol: str) -> str:
    """货币对缓存键，如 USD-EUR"""
    return f"{base.upper()}-{symbol.upper()}"


@dataclass
class RateSeries:
    """
    汇率时间序列

    一个 (base, symbol) 货币对的按日汇率。
    order 始终是 samples 键的严格升序排列，构建后视为不可变，
    需要新区间时整体替换而不是原地修改。
    """
    base: str
    symbol: str
    samples: Dict[date, float] = field(default_factory=dict)
    order: List[date] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        base: str,
        symbol: str,
        pairs: Iterable[Tuple[date, float]],
    ) -> "RateSeries":
        """
        从任意顺序的 (日期, 汇率) 构建序列

        重复日期保留最后一个值，最后统一做一次稳定排序。

        Args:
            base: 基础货币
            symbol: 报价货币
            pairs: (日期, 汇率) 序列

        Returns:
            RateSeries 对象
        """
        samples: Dict[date, float] = {}
        order: List[date] = []
        for when, rate in pairs:
            day = normalize_date(when)
            if day not in samples:
                order.append(day)
            samples[day] = float(rate)

        order.sort()
        return cls(base=base.upper(), symbol=symbol.upper(), samples=samples, order=order)

    def __len__(self) -> int:
        return len(self.order)

    @property
    def key(self) -> str:
        return cache_key(self.base, self.symbol)

    @property
    def is_empty(self) -> bool:
        return len(self.order) == 0

    @property
    def first_date(self) -> Optional[date]:
        if self.is_empty:
            return None
        return self.order[0]

    @property
    def last_date(self) -> Optional[date]:
        if self.is_empty:
            return None
        return self.order[-1]

    @property
    def cost(self) -> int:
        """估算内存占用，仅用于缓存计费"""
        return (DATE_SIZE + RATE_SIZE) * len(self.samples) + ORDER_ENTRY_SIZE * len(self.order)

    def contains(self, when) -> bool:
        """是否包含某个日历日"""
        return normalize_date(when) in self.samples

    def contains_today(self, now: Optional[datetime] = None) -> bool:
        """是否包含当前 UTC 日期的数据"""
        now = now or datetime.now(timezone.utc)
        return self.contains(now)

    def slice_open(self, start, end) -> List[Tuple[date, float]]:
        """
        截取开区间 (start, end) 内的数据

        每个数据点按其 UTC 零点时刻与边界比较；边界为 date 时取其 UTC 零点。

        Args:
            start: 起始（不含）
            end: 结束（不含）

        Returns:
            按日期升序的 (日期, 汇率) 列表
        """
        lower = to_utc_instant(start)
        upper = to_utc_instant(end)
        return [(day, self.samples[day]) for day in self.order if lower < utc_midnight(day) < upper]

    def to_frame(self, points: Optional[List[Tuple[date, float]]] = None, name: str = "response") -> "RateFrame":
        """转换为表格形式，默认使用全部数据"""
        if points is None:
            points = [(day, self.samples[day]) for day in self.order]
        return RateFrame(
            name=name,
            symbol=self.symbol,
            times=[utc_midnight(day) for day, _ in points],
            values=[rate for _, rate in points],
        )

    def __repr__(self):
        return f"RateSeries({self.key}, {len(self)} 条, {self.first_date} ~ {self.last_date})"


@dataclass
class RateFrame:
    """
    表格形式的汇率数据

    time 字段与汇率字段等长，对应宿主期望的时间序列帧。
    """
    name: str
    symbol: str
    times: List[datetime] = field(default_factory=list)
    values: List[float] = field(default_factory=list)

    def __post_init__(self):
        if len(self.times) != len(self.values):
            raise ValueError(f"times 与 values 长度不一致: {len(self.times)} != {len(self.values)}")

    def __len__(self) -> int:
        return len(self.times)

    def points(self) -> List[Tuple[date, float]]:
        return [(when.date(), rate) for when, rate in zip(self.times, self.values)]

    def to_dataframe(self) -> pd.DataFrame:
        """
        转换为 Pandas DataFrame

        Returns:
            以 time 为索引、汇率列名为 symbol 的 DataFrame
        """
        df = pd.DataFrame({"time": pd.to_datetime(self.times, utc=True), self.symbol: self.values})
        df.set_index("time", inplace=True)
        return df

    def to_numpy(self) -> np.ndarray:
        return np.array(self.values, dtype=np.float64)
