"""
Unit tests for the exchange rate and pricing service.

This test suite covers:
- Pricing of known and unknown models
- Rate caching and refresh after the TTL
- Fallback to the cached or static rate when the fetch fails
"""

import time

import httpx
import pytest

from edify_ai.server.services.exchange import MODEL_PRICING, ExchangeRateService, PricingError

RATES_URL = "http://mock/v4/latest/USD"


@pytest.fixture
def rates_api(monkeypatch: pytest.MonkeyPatch):
    """Serve GBP rates from a queue; an exception in the queue is raised instead."""
    answers = []
    calls = []

    async def fake_get(self, url, *args, **kwargs):
        calls.append(str(url))
        answer = answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return httpx.Response(200, json={"rates": {"GBP": answer}}, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", fake_get)
    return answers, calls


class TestCalculateGbpPrice:
    @pytest.mark.asyncio
    async def test_price_uses_per_thousand_rates(self, exchange):
        price = await exchange.calculate_gbp_price(1000, 1000, "gpt-4o")
        assert price == pytest.approx((0.01 + 0.03) * 0.8)

    @pytest.mark.asyncio
    async def test_price_is_rounded_to_six_places(self, exchange):
        price = await exchange.calculate_gbp_price(1, 1, "gpt-4o-mini")
        assert price == round((0.01 + 0.03) / 1000 * 0.8, 6)

    @pytest.mark.asyncio
    async def test_unknown_model(self, exchange):
        with pytest.raises(PricingError, match="Invalid model for pricing"):
            await exchange.calculate_gbp_price(10, 10, "gpt-3.5-turbo")

    def test_priced_models(self):
        assert set(MODEL_PRICING) == {"gpt-4-turbo-preview", "gpt-4o-mini", "gpt-4o"}


class TestGetRate:
    @pytest.mark.asyncio
    async def test_rate_is_fetched_and_cached(self, rates_api):
        answers, calls = rates_api
        answers.extend([0.75, 0.9])
        service = ExchangeRateService(RATES_URL, ttl_seconds=3600, fallback_rate=0.79)

        assert await service.get_rate() == 0.75
        assert await service.get_rate() == 0.75
        assert calls == [RATES_URL]

    @pytest.mark.asyncio
    async def test_stale_rate_is_refreshed(self, rates_api):
        answers, calls = rates_api
        answers.append(0.9)
        service = ExchangeRateService(RATES_URL, ttl_seconds=60, fallback_rate=0.79)
        service._rate = 0.75
        service._fetched_at = time.monotonic() - 120

        assert await service.get_rate() == 0.9
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_failure_without_cache_uses_fallback(self, rates_api):
        answers, _ = rates_api
        answers.append(httpx.ConnectError("unreachable"))
        service = ExchangeRateService(RATES_URL, ttl_seconds=60, fallback_rate=0.79)

        assert await service.get_rate() == 0.79

    @pytest.mark.asyncio
    async def test_failure_keeps_stale_cached_rate(self, rates_api):
        answers, _ = rates_api
        answers.append(httpx.ConnectError("unreachable"))
        service = ExchangeRateService(RATES_URL, ttl_seconds=60, fallback_rate=0.79)
        service._rate = 0.81
        service._fetched_at = time.monotonic() - 120

        assert await service.get_rate() == 0.81
