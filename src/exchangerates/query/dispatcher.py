"""
批量查询调度器
每条查询一个任务并发执行，按 ref_id 汇总结果，支持整体超时/取消
"""

import asyncio
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from loguru import logger

from ..data.fetcher import RangeFetcher
from ..exceptions import QueryParseError
from .models import QueryResult, RateQuery

RawQuery = Tuple[str, Union[bytes, str], datetime, datetime]


class QueryDispatcher:
    """
    批量查询调度器

    - 各查询互不影响，单条失败只记录在对应 ref_id 上
    - 全部完成、超时或 cancel_event 被设置时立即返回（以先到者为准）
    - 提前返回时未完成的任务不会被取消，在后台继续执行，结果丢弃
    """

    # 多取一天数据，图表起点不会出现断崖
    LEADING_DAYS = 1

    def __init__(self, fetcher: RangeFetcher, timeout: Optional[float] = None):
        """
        Args:
            fetcher: 区间获取器
            timeout: 默认批次超时秒数（None 表示不限）
        """
        self.fetcher = fetcher
        self.timeout = timeout
        self._background: Set[asyncio.Task] = set()

    async def run_query(self, query: RateQuery) -> QueryResult:
        """
        执行单条查询

        Args:
            query: 查询

        Returns:
            QueryResult，错误不会抛出
        """
        widened = query.start - timedelta(days=self.LEADING_DAYS)

        try:
            series = await self.fetcher.fetch_range(query.base_currency, query.to_currency, widened, query.end)
        except Exception as e:
            logger.error(f"查询 {query.ref_id} ({query.base_currency}/{query.to_currency}) 失败: {e}")
            return QueryResult(ref_id=query.ref_id, error=e)

        points = series.slice_open(query.start, query.end)
        return QueryResult(ref_id=query.ref_id, frame=series.to_frame(points))

    async def dispatch(
        self,
        queries: Iterable[RateQuery],
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Dict[str, QueryResult]:
        """
        并发执行一批查询

        Args:
            queries: 查询列表，ref_id 须唯一
            timeout: 批次超时秒数（None 使用实例默认值）
            cancel_event: 外部取消信号

        Returns:
            {ref_id: QueryResult}；提前结束时只包含已完成的部分
        """
        queries = list(queries)
        ref_ids = [q.ref_id for q in queries]
        if len(set(ref_ids)) != len(ref_ids):
            raise ValueError(f"批次内 ref_id 重复: {ref_ids}")

        tasks: Dict[asyncio.Task, str] = {
            asyncio.create_task(self.run_query(q), name=f"rate-query-{q.ref_id}"): q.ref_id for q in queries
        }
        return await self._gather(tasks, self.timeout if timeout is None else timeout, cancel_event)

    async def dispatch_raw(
        self,
        raw_queries: Iterable[RawQuery],
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Dict[str, QueryResult]:
        """
        执行宿主原始查询 (ref_id, 参数字节, start, end)

        参数解析失败的查询直接记录错误，不参与调度。
        """
        parsed: List[RateQuery] = []
        failed: Dict[str, QueryResult] = {}

        for ref_id, raw, start, end in raw_queries:
            try:
                parsed.append(RateQuery.from_raw(ref_id, raw, start, end))
            except QueryParseError as e:
                logger.warning(str(e))
                failed[ref_id] = QueryResult(ref_id=ref_id, error=e)

        results = await self.dispatch(parsed, timeout=timeout, cancel_event=cancel_event)
        failed.update(results)
        return failed

    async def _gather(
        self,
        tasks: Dict[asyncio.Task, str],
        timeout: Optional[float],
        cancel_event: Optional[asyncio.Event],
    ) -> Dict[str, QueryResult]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout if timeout is not None else None
        results: Dict[str, QueryResult] = {}
        pending = set(tasks)
        cancel_waiter = asyncio.ensure_future(cancel_event.wait()) if cancel_event is not None else None

        try:
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    break

                remaining = None
                if deadline is not None:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        break

                waiters = pending | {cancel_waiter} if cancel_waiter is not None else pending
                done, _ = await asyncio.wait(waiters, timeout=remaining, return_when=asyncio.FIRST_COMPLETED)

                for task in done:
                    if task is cancel_waiter:
                        continue
                    pending.discard(task)
                    self._collect(task, tasks[task], results)
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

            # 已完成但尚未收集的结果一并返回，其余放入后台
            for task in list(pending):
                if task.done():
                    pending.discard(task)
                    self._collect(task, tasks[task], results)

            for task in pending:
                self._background.add(task)
                task.add_done_callback(self._background.discard)

        if pending:
            logger.warning(f"批次提前结束: 完成 {len(results)}/{len(tasks)}，{len(pending)} 个查询转入后台")

        return results

    @staticmethod
    def _collect(task: asyncio.Task, ref_id: str, results: Dict[str, QueryResult]) -> None:
        if task.cancelled():
            return
        results[ref_id] = task.result()

    @property
    def background_count(self) -> int:
        """后台仍在运行的查询数"""
        return len(self._background)

    async def drain(self) -> None:
        """等待所有后台查询结束"""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
