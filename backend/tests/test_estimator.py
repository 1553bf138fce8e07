"""Tests for fund estimator engine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from fund_valuation.models.fund import Estimate, Holding
from fund_valuation.models.market import Quote
from fund_valuation.services.direct_estimate import DirectEstimateClient
from fund_valuation.services.estimator import FundEstimator, calculate_estimate
from fund_valuation.services.holdings import HoldingsResolver
from fund_valuation.services.quotes import QuoteClient, QuoteFetchError


def _quote(identifier: str, growth_pct: float, name: str = "股票", prev: float = 100.0) -> Quote:
    return Quote.build(
        identifier=identifier,
        short_code=identifier[2:],
        name=name,
        price=prev * (1 + growth_pct / 100),
        previous_close=prev,
        as_of="10:00:00",
    )


DIRECT = Estimate(estimated_nav=1.23, growth_rate_percent=0.5, source="direct")


class TestCalculateEstimate:
    def test_renormalizes_by_known_weight(self):
        """Known weight 0.2 with weighted change 0.01 -> 5% growth."""
        holdings = [Holding("sh600519", 0.2)]
        quotes = {"sh600519": _quote("sh600519", 5.0)}

        result = calculate_estimate(holdings, quotes, 10.0)

        assert result.source == "holdings"
        assert result.growth_rate_percent == pytest.approx(5.0)
        assert result.estimated_nav == pytest.approx(10.5)
        assert result.known_weight == pytest.approx(0.2)

    def test_two_holdings(self):
        holdings = [Holding("sh600519", 0.089), Holding("sz000858", 0.065)]
        quotes = {
            "sh600519": _quote("sh600519", 2.0, "贵州茅台"),
            "sz000858": _quote("sz000858", -1.0, "五粮液"),
        }
        result = calculate_estimate(holdings, quotes, 1.0)

        expected = (0.089 * 0.02 + 0.065 * -0.01) / 0.154
        assert result.growth_rate_percent == pytest.approx(expected * 100)
        assert result.estimated_nav == pytest.approx(1 + expected)
        assert result.known_weight == pytest.approx(0.154)

    def test_thin_sample_prefers_direct(self):
        holdings = [Holding("sh600519", 0.03)]
        quotes = {"sh600519": _quote("sh600519", 10.0)}
        assert calculate_estimate(holdings, quotes, 2.0, DIRECT) is DIRECT

    def test_thin_sample_without_direct_uses_full_weight(self):
        """Known weight 0.03: weighted change is used as-is."""
        holdings = [Holding("sh600519", 0.03)]
        quotes = {"sh600519": _quote("sh600519", 10.0)}

        result = calculate_estimate(holdings, quotes, 2.0)

        assert result.growth_rate_percent == pytest.approx(0.3)
        assert result.estimated_nav == pytest.approx(2.0 * 1.003)
        assert result.known_weight == pytest.approx(0.03)

    def test_missing_quote_excluded(self):
        holdings = [Holding("sh600519", 0.5), Holding("sz999999", 0.3)]
        quotes = {"sh600519": _quote("sh600519", 3.0)}

        result = calculate_estimate(holdings, quotes, 1.5)

        assert [d.identifier for d in result.holdings_detail] == ["sh600519"]
        assert result.growth_rate_percent == pytest.approx(3.0)
        assert result.known_weight == pytest.approx(0.5)

    def test_quote_without_price_excluded(self):
        holdings = [Holding("sh600519", 0.5), Holding("sh601318", 0.5)]
        quotes = {
            "sh600519": _quote("sh600519", 1.0),
            "sh601318": Quote("sh601318", "601318", "中国平安", 0.0, 0.0, 0.0, "10:00:00"),
        }
        result = calculate_estimate(holdings, quotes, 1.0)
        assert len(result.holdings_detail) == 1

    def test_no_quotes_falls_back(self):
        holdings = [Holding("sh600519", 0.5)]
        assert calculate_estimate(holdings, {}, 1.0, DIRECT) is DIRECT

        neutral = calculate_estimate(holdings, {}, 1.0)
        assert neutral.source == "neutral"
        assert neutral.estimated_nav == 1.0
        assert neutral.growth_rate_percent == 0.0
        assert neutral.holdings_detail == ()

    def test_holding_details_in_result(self):
        holdings = [Holding("sh600519", 0.089)]
        quotes = {"sh600519": _quote("sh600519", 2.0, "贵州茅台", prev=1800.0)}

        result = calculate_estimate(holdings, quotes, 1.0)

        detail = result.holdings_detail[0]
        assert detail.identifier == "sh600519"
        assert detail.name == "贵州茅台"
        assert detail.price == pytest.approx(1836.0)
        assert detail.change == pytest.approx(2.0)
        assert detail.weight == 0.089


def _estimator(holdings=None, direct=None, quotes=None, quotes_error=None) -> FundEstimator:
    resolver = MagicMock(spec=HoldingsResolver)
    resolver.get_holdings = AsyncMock(return_value=holdings or [])
    direct_client = MagicMock(spec=DirectEstimateClient)
    direct_client.fetch = AsyncMock(return_value=direct)
    quote_client = MagicMock(spec=QuoteClient)
    quote_client.fetch_quotes = AsyncMock(return_value=quotes or {}, side_effect=quotes_error)
    return FundEstimator(resolver, quote_client, direct_client)


class TestFundEstimator:
    @pytest.mark.asyncio
    async def test_no_holdings_returns_direct(self):
        estimator = _estimator(direct=DIRECT)
        assert await estimator.estimate("000216", 1.2) is DIRECT
        estimator._quotes.fetch_quotes.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_holdings_no_direct_is_neutral(self):
        result = await _estimator().estimate("000216", 1.2)
        assert result == Estimate.neutral(1.2)

    @pytest.mark.asyncio
    async def test_zero_weight_holdings_return_direct(self):
        estimator = _estimator(holdings=[Holding("sh600519", 0.0)], direct=DIRECT)
        assert await estimator.estimate("000216", 1.2) is DIRECT

    @pytest.mark.asyncio
    async def test_quote_failure_falls_back(self):
        estimator = _estimator(
            holdings=[Holding("sh600519", 0.5)],
            direct=DIRECT,
            quotes_error=QuoteFetchError("down"),
        )
        assert await estimator.estimate("000216", 1.2) is DIRECT

    @pytest.mark.asyncio
    async def test_collaborator_exception_is_absorbed(self):
        estimator = _estimator()
        estimator._holdings.get_holdings.side_effect = RuntimeError("boom")
        estimator._direct.fetch.side_effect = RuntimeError("boom")
        result = await estimator.estimate("000216", 1.2)
        assert result.source == "neutral"

    @pytest.mark.asyncio
    async def test_holdings_estimate(self):
        estimator = _estimator(
            holdings=[Holding("sh600519", 0.9)],
            direct=DIRECT,
            quotes={"sh600519": _quote("sh600519", 1.0)},
        )
        result = await estimator.estimate("000216", 3.80)
        assert result.source == "holdings"
        assert result.growth_rate_percent == pytest.approx(1.0)
        estimator._quotes.fetch_quotes.assert_awaited_once_with(["sh600519"])

    @pytest.mark.asyncio
    async def test_direct_survives_failing_holdings(self):
        """A holdings failure must not discard a slower direct estimate."""

        async def slow_direct(fund_code):
            await asyncio.sleep(0.05)
            return DIRECT

        estimator = _estimator()
        estimator._holdings.get_holdings.side_effect = RuntimeError("boom")
        estimator._direct.fetch.side_effect = slow_direct

        assert await estimator.estimate("000216", 1.2) is DIRECT
        estimator._quotes.fetch_quotes.assert_not_called()

    @pytest.mark.asyncio
    async def test_known_direct_is_not_fetched_again(self):
        estimator = _estimator()
        assert await estimator.estimate("000216", 1.2, direct=DIRECT) is DIRECT
        estimator._direct.fetch.assert_not_called()
        estimator._holdings.get_holdings.assert_awaited_once_with("000216")


class TestEndToEnd:
    """Real services against a fake upstream."""

    HOLDINGS = {"Data": {"Holding": [{"GPDM": "600519", "JZBL": "90.00"}], "FundHolding": []}}
    QUOTES = 'v_sh600519="1~贵州茅台~600519~1818.00~1800.00~0";'
    DIRECT = 'jsonpgz({"fundcode":"000216","gsz":"3.8100","gszzl":"0.26","dwjz":"3.8000"});'

    def _handler(self, calls):
        def handler(request: httpx.Request) -> httpx.Response:
            host = request.url.host
            calls[host] = calls.get(host, 0) + 1
            if host == "mob.test":
                return httpx.Response(200, json=self.HOLDINGS)
            if host == "qt.test":
                return httpx.Response(200, content=self.QUOTES.encode("gbk"))
            if host == "gz.test":
                return httpx.Response(200, text=self.DIRECT)
            return httpx.Response(404)

        return handler

    def _build(self, client) -> FundEstimator:
        return FundEstimator(
            HoldingsResolver(client, primary_url="https://mob.test/api", fallback_url="https://f10.test/api"),
            QuoteClient(client, base_url="https://qt.test/q="),
            DirectEstimateClient(client, base_url="https://gz.test/js"),
        )

    @pytest.mark.asyncio
    async def test_single_dominant_holding(self):
        """90% in one stock up 1% -> whole fund renormalized to +1%."""
        calls = {}
        async with httpx.AsyncClient(transport=httpx.MockTransport(self._handler(calls))) as client:
            result = await self._build(client).estimate("000216", 3.80)

        assert result.source == "holdings"
        assert result.known_weight == pytest.approx(0.9)
        assert result.growth_rate_percent == pytest.approx(1.0)
        assert result.estimated_nav == pytest.approx(3.838)
        assert result.holdings_detail[0].name == "贵州茅台"

    @pytest.mark.asyncio
    async def test_second_call_hits_holdings_cache(self):
        calls = {}
        async with httpx.AsyncClient(transport=httpx.MockTransport(self._handler(calls))) as client:
            estimator = self._build(client)
            await estimator.estimate("000216", 3.80)
            await estimator.estimate("000216", 3.80)

        assert calls["mob.test"] == 1
        assert calls["qt.test"] == 2
        assert calls["gz.test"] == 2

    @pytest.mark.asyncio
    async def test_holdings_timeouts_return_direct(self):
        """Both holdings sources time out; the upstream estimate is still used."""
        calls = {}
        direct = 'jsonpgz({"fundcode":"000216","gsz":"1.1000","gszzl":"0.50","dwjz":"1.0945"});'

        def handler(request: httpx.Request) -> httpx.Response:
            host = request.url.host
            calls[host] = calls.get(host, 0) + 1
            if host in ("mob.test", "f10.test"):
                raise httpx.ReadTimeout("timed out", request=request)
            if host == "gz.test":
                return httpx.Response(200, text=direct)
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await self._build(client).estimate("000216", 1.0945)

        assert result.source == "direct"
        assert result.estimated_nav == 1.1
        assert calls == {"mob.test": 1, "f10.test": 1, "gz.test": 1}
