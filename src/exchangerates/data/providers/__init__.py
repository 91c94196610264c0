"""
汇率数据源基类
定义上游时间序列接口
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List


class RateProvider(ABC):
    """
    汇率数据源抽象基类

    返回上游原始 JSON：{"base": ..., "rates": {"<日期>": {"<货币>": 数值}}}。
    解析与缓存由 RangeFetcher 负责。
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """数据源名称"""

    @abstractmethod
    async def fetch_timeseries(
        self,
        base: str,
        symbols: List[str],
        start_date: date,
        end_date: date,
    ) -> Dict[str, Any]:
        """
        获取闭区间 [start_date, end_date] 的汇率时间序列

        Args:
            base: 基础货币
            symbols: 报价货币列表
            start_date: 开始日期
            end_date: 结束日期

        Returns:
            上游响应数据

        Raises:
            TransportError: 网络错误
            UpstreamProtocolError: 非 2xx 或响应无法解析
        """

    async def close(self) -> None:
        """释放资源"""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __repr__(self):
        return f"RateProvider({self.name})"
