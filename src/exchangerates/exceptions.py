"""
异常定义
汇率数据获取过程中的错误分类
"""

from typing import Optional


class ExchangeRatesError(Exception):
    """所有汇率相关错误的基类"""


class TransportError(ExchangeRatesError):
    """上游不可达或连接失败"""


class UpstreamProtocolError(ExchangeRatesError):
    """
    上游协议错误

    非 2xx 状态码、无法解析的响应体或 API 层面返回的错误。
    保留上游状态码与消息便于排查。
    """

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"[{self.status}] {self.message}"


class QueryParseError(ExchangeRatesError):
    """查询参数格式错误"""
