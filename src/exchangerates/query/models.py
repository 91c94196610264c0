"""
查询模型
宿主查询参数解码与单条查询结果
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..data.models import RateFrame, to_utc_instant
from ..exceptions import QueryParseError


class QueryParams(BaseModel):
    """宿主传入的查询参数 JSON"""
    model_config = ConfigDict(populate_by_name=True)

    base_currency: str = Field(alias="baseCurrency")
    to_currency: str = Field(alias="toCurrency")

    @field_validator("base_currency", "to_currency")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        value = value.strip().upper()
        if not value:
            raise ValueError("货币代码不能为空")
        return value


class RateQuery(QueryParams):
    """
    单条汇率查询

    ref_id 在同一批次内唯一，结果按它回填。
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    ref_id: str
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        """naive 视为 UTC，统一为带时区的 UTC 时刻"""
        return to_utc_instant(value)

    @model_validator(mode="after")
    def _check_range(self) -> "RateQuery":
        if self.start > self.end:
            raise ValueError(f"时间范围无效: {self.start} > {self.end}")
        return self

    @classmethod
    def from_raw(
        cls,
        ref_id: str,
        raw: Union[bytes, str],
        start: datetime,
        end: datetime,
    ) -> "RateQuery":
        """
        从宿主原始参数字节解码

        Args:
            ref_id: 查询标识
            raw: JSON 参数，形如 {"baseCurrency": "USD", "toCurrency": "EUR"}
            start: 时间范围起点
            end: 时间范围终点

        Returns:
            RateQuery 对象

        Raises:
            QueryParseError: 参数无法解析或校验失败
        """
        try:
            params = QueryParams.model_validate_json(raw)
            return cls(
                ref_id=ref_id,
                base_currency=params.base_currency,
                to_currency=params.to_currency,
                start=start,
                end=end,
            )
        except (ValidationError, TypeError) as e:
            detail = e.errors(include_url=False) if isinstance(e, ValidationError) else str(e)
            raise QueryParseError(f"查询 {ref_id} 参数错误: {detail}") from e


@dataclass
class QueryResult:
    """单条查询的结果或错误"""
    ref_id: str
    frame: Optional[RateFrame] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None
