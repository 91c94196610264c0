"""
查询调度模块
"""

from .dispatcher import QueryDispatcher
from .models import QueryParams, QueryResult, RateQuery

__all__ = ["QueryDispatcher", "QueryParams", "QueryResult", "RateQuery"]
