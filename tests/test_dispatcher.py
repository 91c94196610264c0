"""
QueryDispatcher 单元测试

覆盖范围：
- 起点前移一天获取、结果按原区间开区间过滤
- 单条失败不影响其他查询
- 原始参数解析失败只记录在对应 ref_id
- 超时/取消时返回部分结果，未完成任务转入后台
"""

import asyncio
import time
from datetime import date, datetime, timezone

import pytest

from exchangerates.data.cache import CostWeightedCache
from exchangerates.data.fetcher import RangeFetcher
from exchangerates.exceptions import QueryParseError, TransportError, UpstreamProtocolError
from exchangerates.query import QueryDispatcher, QueryResult, RateQuery
from fakes import FakeRateProvider, make_payload


def run_async(coro):
    """在同步上下文中执行协程"""
    return asyncio.run(coro)


def utc(year: int, month: int, day: int, hour: int = 0) -> datetime:
    return datetime(year, month, day, hour, tzinfo=timezone.utc)


SCENARIO_PAYLOAD = make_payload("USD", "EUR", {"2024-01-01": 0.90, "2024-01-02": 0.91, "2024-01-03": 0.92})


def make_query(ref_id: str, symbol: str = "EUR", base: str = "USD") -> RateQuery:
    return RateQuery(ref_id=ref_id, base_currency=base, to_currency=symbol, start=utc(2024, 1, 1), end=utc(2024, 1, 3))


def make_dispatcher(provider, **kwargs) -> QueryDispatcher:
    cache = CostWeightedCache(max_cost=1024 * 1024, seed=1)
    return QueryDispatcher(RangeFetcher(provider, cache), **kwargs)


# =========================================================================
# 1. 查询模型
# =========================================================================


class TestRateQuery:
    """参数解码"""

    def test_from_raw(self):
        query = RateQuery.from_raw("A", b'{"baseCurrency": "usd", "toCurrency": " eur "}', utc(2024, 1, 1), utc(2024, 1, 3))
        assert query.base_currency == "USD"
        assert query.to_currency == "EUR"
        assert query.ref_id == "A"

    @pytest.mark.parametrize(
        "raw",
        [
            b"not json",
            b'{"baseCurrency": "USD"}',
            b'{"baseCurrency": "", "toCurrency": "EUR"}',
            b'{"baseCurrency": 1, "toCurrency": "EUR"}',
        ],
    )
    def test_from_raw_invalid(self, raw):
        with pytest.raises(QueryParseError):
            RateQuery.from_raw("A", raw, utc(2024, 1, 1), utc(2024, 1, 3))

    def test_reversed_range(self):
        with pytest.raises(QueryParseError):
            RateQuery.from_raw("A", b'{"baseCurrency": "USD", "toCurrency": "EUR"}', utc(2024, 1, 3), utc(2024, 1, 1))

    def test_naive_bounds_treated_as_utc(self):
        """naive 边界视为 UTC，与带时区的边界可以比较"""
        query = RateQuery.from_raw(
            "A", b'{"baseCurrency": "USD", "toCurrency": "EUR"}', datetime(2024, 1, 1, 8), utc(2024, 1, 3)
        )
        assert query.start == utc(2024, 1, 1, 8)
        assert query.start.tzinfo is not None

    def test_naive_reversed_range(self):
        with pytest.raises(QueryParseError):
            RateQuery.from_raw("A", b'{"baseCurrency": "USD", "toCurrency": "EUR"}', datetime(2024, 1, 3), utc(2024, 1, 1))

    def test_result_ok(self):
        assert QueryResult(ref_id="A").ok
        assert not QueryResult(ref_id="A", error=ValueError("x")).ok


# =========================================================================
# 2. 单条查询
# =========================================================================


class TestRunQuery:
    def test_scenario_one_point(self):
        """[01-01, 01-03] 前移到 12-31 获取，开区间过滤后只剩 01-02"""
        provider = FakeRateProvider(payloads={"EUR": SCENARIO_PAYLOAD})
        dispatcher = make_dispatcher(provider)

        results = run_async(dispatcher.dispatch([make_query("A")]))

        assert provider.calls == [("USD", ["EUR"], date(2023, 12, 31), date(2024, 1, 3))]
        result = results["A"]
        assert result.ok
        assert result.frame.points() == [(date(2024, 1, 2), 0.91)]
        assert result.frame.symbol == "EUR"
        assert result.frame.times == [utc(2024, 1, 2)]

    def test_intraday_bounds(self):
        """边界在盘中时按时刻比较：起点当天零点被排除，终点当天零点保留"""
        payload = make_payload("USD", "EUR", {"2024-01-01": 0.90, "2024-01-02": 0.91, "2024-01-03": 0.92})
        provider = FakeRateProvider(payloads={"EUR": payload})
        dispatcher = make_dispatcher(provider)
        query = RateQuery(ref_id="A", base_currency="USD", to_currency="EUR", start=utc(2024, 1, 1, 12), end=utc(2024, 1, 3, 12))

        result = run_async(dispatcher.dispatch([query]))["A"]

        assert [d for d, _ in result.frame.points()] == [date(2024, 1, 2), date(2024, 1, 3)]

    def test_empty_result(self):
        provider = FakeRateProvider()
        dispatcher = make_dispatcher(provider)
        result = run_async(dispatcher.dispatch([make_query("A")]))["A"]
        assert result.ok
        assert len(result.frame) == 0


# =========================================================================
# 3. 批量与错误隔离
# =========================================================================


class TestDispatchBatch:
    def test_failure_isolated(self):
        """一条查询失败，其余 N-1 条正常返回"""
        payloads = {s: make_payload("USD", s, {"2024-01-01": 1.0, "2024-01-02": 1.1}) for s in ("EUR", "GBP", "JPY")}
        provider = FakeRateProvider(
            payloads=payloads,
            errors={"XXX": UpstreamProtocolError("bad symbol", status=400)},
        )
        dispatcher = make_dispatcher(provider)
        queries = [make_query("A", "EUR"), make_query("B", "XXX"), make_query("C", "GBP"), make_query("D", "JPY")]

        results = run_async(dispatcher.dispatch(queries))

        assert set(results) == {"A", "B", "C", "D"}
        assert isinstance(results["B"].error, UpstreamProtocolError)
        assert results["B"].error.status == 400
        for ref_id in ("A", "C", "D"):
            assert results[ref_id].ok
            assert results[ref_id].frame.points() == [(date(2024, 1, 2), 1.1)]

    def test_queries_run_concurrently(self):
        """各查询并发执行，总耗时接近单条耗时"""
        symbols = ["EUR", "GBP", "JPY", "CNY", "CHF"]
        provider = FakeRateProvider(delays={s: 0.2 for s in symbols})
        dispatcher = make_dispatcher(provider)

        started = time.monotonic()
        results = run_async(dispatcher.dispatch([make_query(s, s) for s in symbols]))
        elapsed = time.monotonic() - started

        assert len(results) == 5
        assert elapsed < 0.8

    def test_dispatch_raw_parse_error(self):
        """参数解析失败只影响对应查询"""
        provider = FakeRateProvider(payloads={"EUR": SCENARIO_PAYLOAD})
        dispatcher = make_dispatcher(provider)
        raw = [
            ("A", b'{"baseCurrency": "USD", "toCurrency": "EUR"}', utc(2024, 1, 1), utc(2024, 1, 3)),
            ("B", b"{broken", utc(2024, 1, 1), utc(2024, 1, 3)),
        ]

        results = run_async(dispatcher.dispatch_raw(raw))

        assert results["A"].frame.points() == [(date(2024, 1, 2), 0.91)]
        assert isinstance(results["B"].error, QueryParseError)
        assert len(provider.calls) == 1

    def test_dispatch_raw_mixed_naive_and_aware_bounds(self):
        """一个边界不带时区时按 UTC 处理，不影响同批次其他查询"""
        provider = FakeRateProvider(payloads={"EUR": SCENARIO_PAYLOAD})
        dispatcher = make_dispatcher(provider)
        params = b'{"baseCurrency": "USD", "toCurrency": "EUR"}'
        raw = [
            ("A", params, utc(2024, 1, 1), utc(2024, 1, 3)),
            ("B", params, datetime(2024, 1, 1), utc(2024, 1, 3)),
        ]

        results = run_async(dispatcher.dispatch_raw(raw))

        assert set(results) == {"A", "B"}
        assert results["A"].frame.points() == [(date(2024, 1, 2), 0.91)]
        assert results["B"].ok
        assert results["B"].frame.points() == [(date(2024, 1, 2), 0.91)]

    def test_duplicate_ref_ids(self):
        dispatcher = make_dispatcher(FakeRateProvider())
        with pytest.raises(ValueError):
            run_async(dispatcher.dispatch([make_query("A"), make_query("A", "GBP")]))

    def test_empty_batch(self):
        dispatcher = make_dispatcher(FakeRateProvider())
        assert run_async(dispatcher.dispatch([])) == {}

    def test_shared_cache_across_batches(self):
        """同一调度器的多个批次共享缓存"""
        provider = FakeRateProvider(payloads={"EUR": make_payload("USD", "EUR", {"2023-12-31": 0.89, "2024-01-03": 0.92})})
        dispatcher = make_dispatcher(provider)

        async def _test():
            await dispatcher.dispatch([make_query("A")])
            await dispatcher.dispatch([make_query("B")])

        run_async(_test())
        assert len(provider.calls) == 1


# =========================================================================
# 4. 超时与取消
# =========================================================================


class TestCancellation:
    def test_cancel_before_completion(self):
        """取消信号先于任何查询完成时，立即返回空结果"""

        async def _test():
            gate = asyncio.Event()
            provider = FakeRateProvider(payloads={"EUR": SCENARIO_PAYLOAD}, gate=gate)
            dispatcher = make_dispatcher(provider)
            cancel = asyncio.Event()
            asyncio.get_running_loop().call_later(0.05, cancel.set)

            started = time.monotonic()
            results = await dispatcher.dispatch([make_query("A"), make_query("B", "GBP")], cancel_event=cancel)
            elapsed = time.monotonic() - started

            assert results == {}
            assert elapsed < 1.0
            assert dispatcher.background_count == 2

            # 后台任务继续运行，完成后从集合中移除
            gate.set()
            await dispatcher.drain()
            assert dispatcher.background_count == 0
            assert len(provider.calls) == 2

        run_async(_test())

    def test_already_cancelled(self):
        async def _test():
            gate = asyncio.Event()
            dispatcher = make_dispatcher(FakeRateProvider(gate=gate))
            cancel = asyncio.Event()
            cancel.set()

            results = await dispatcher.dispatch([make_query("A")], cancel_event=cancel)
            assert results == {}

            gate.set()
            await dispatcher.drain()

        run_async(_test())

    def test_timeout_returns_partial(self):
        """超时返回已完成的部分结果，不视为错误"""

        async def _test():
            provider = FakeRateProvider(
                payloads={"EUR": SCENARIO_PAYLOAD},
                delays={"GBP": 5.0},
            )
            dispatcher = make_dispatcher(provider)

            started = time.monotonic()
            results = await dispatcher.dispatch([make_query("A"), make_query("B", "GBP")], timeout=0.2)
            elapsed = time.monotonic() - started

            assert set(results) == {"A"}
            assert results["A"].ok
            assert elapsed < 1.0
            assert dispatcher.background_count == 1

        run_async(_test())

    def test_default_timeout_from_instance(self):
        async def _test():
            gate = asyncio.Event()
            dispatcher = make_dispatcher(FakeRateProvider(gate=gate), timeout=0.05)

            results = await dispatcher.dispatch([make_query("A")])
            assert results == {}

            gate.set()
            await dispatcher.drain()

        run_async(_test())

    def test_errors_collected_before_cancel(self):
        """取消前已失败的查询结果照常返回"""

        async def _test():
            gate = asyncio.Event()
            failing = FakeRateProvider(errors={"XXX": TransportError("down")})
            slow = FakeRateProvider(gate=gate)
            dispatcher = make_dispatcher(_RoutingProvider({"XXX": failing, "EUR": slow}))

            results = await dispatcher.dispatch([make_query("A"), make_query("B", "XXX")], timeout=0.2)
            assert set(results) == {"B"}
            assert isinstance(results["B"].error, TransportError)

            gate.set()
            await dispatcher.drain()

        run_async(_test())


class _RoutingProvider(FakeRateProvider):
    """按货币转发到不同的假数据源"""

    def __init__(self, routes):
        super().__init__()
        self.routes = routes

    async def fetch_timeseries(self, base, symbols, start_date, end_date):
        return await self.routes[symbols[0]].fetch_timeseries(base, symbols, start_date, end_date)
