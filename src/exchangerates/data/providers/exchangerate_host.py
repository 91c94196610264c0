"""
exchangerate.host 数据源
通过 timeseries 接口获取历史汇率
"""

import asyncio
from datetime import date
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger

from ...exceptions import TransportError, UpstreamProtocolError
from . import RateProvider


class ExchangeRateHostProvider(RateProvider):
    """
    exchangerate.host 数据源

    GET {base_url}?start_date=&end_date=&base=&symbols=
    不做内部重试，错误原样交给调用方。
    """

    BASE_URL = "https://api.exchangerate.host/timeseries"

    # 错误消息中保留的响应体长度
    MAX_ERROR_BODY = 200

    def __init__(
        self,
        base_url: Optional[str] = None,
        access_key: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: Optional[float] = None,
    ):
        """
        初始化数据源

        Args:
            base_url: 接口地址（默认 BASE_URL）
            access_key: API 密钥（可选）
            session: 外部传入的 HTTP 会话，传入时由调用方负责关闭
            timeout: 单次请求超时秒数（None 表示不限）
        """
        self.base_url = base_url or self.BASE_URL
        self.access_key = access_key
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    @property
    def name(self) -> str:
        return "exchangerate.host"

    async def _get_session(self) -> aiohttp.ClientSession:
        """获取或创建 HTTP 会话"""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """关闭自有的 HTTP 会话"""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    def _build_params(self, base: str, symbols: List[str], start_date: date, end_date: date) -> Dict[str, str]:
        params = {
            "start_date": start_date.strftime("%Y-%m-%d"),
            "end_date": end_date.strftime("%Y-%m-%d"),
            "base": base,
            "symbols": ",".join(symbols),
        }
        if self.access_key:
            params["access_key"] = self.access_key
        return params

    async def fetch_timeseries(
        self,
        base: str,
        symbols: List[str],
        start_date: date,
        end_date: date,
    ) -> Dict[str, Any]:
        params = self._build_params(base, symbols, start_date, end_date)
        logger.info(f"从 {self.name} 获取 {base}/{','.join(symbols)} 汇率 ({params['start_date']} ~ {params['end_date']})")

        session = await self._get_session()
        try:
            async with session.get(self.base_url, params=params) as response:
                if not 200 <= response.status < 300:
                    body = await response.text()
                    logger.error(f"{self.name} 请求失败: {response.status} {response.reason}")
                    raise UpstreamProtocolError(
                        f"{self.base_url} 响应 {response.reason}: {body[: self.MAX_ERROR_BODY]}",
                        status=response.status,
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise UpstreamProtocolError(f"响应无法解析为 JSON: {e}", status=response.status) from e

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"{self.name} 网络请求错误: {e!r}")
            raise TransportError(f"{self.base_url} 不可达: {e!r}") from e

        if isinstance(data, dict) and data.get("success") is False:
            error = data.get("error") or {}
            if isinstance(error, dict):
                message = error.get("info") or error.get("type") or str(error)
            else:
                message = str(error)
            logger.error(f"{self.name} API 错误: {message}")
            raise UpstreamProtocolError(f"API 错误: {message}", status=response.status)

        return data

    def __repr__(self):
        return f"ExchangeRateHostProvider(base_url={self.base_url!r})"
