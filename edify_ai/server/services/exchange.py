"""
Exchange Rate and Pricing Service.

Converts token usage into a GBP price. Model prices are quoted in USD per
thousand tokens; the USD to GBP rate is fetched from a public rates API and
cached in memory.
"""

from __future__ import annotations

import time
from typing import Optional

import httpx

from edify_ai.core.logging_config import get_logger
from edify_ai.server.core.config import settings

logger = get_logger(__name__)

# USD per 1k tokens
MODEL_PRICING: dict[str, dict[str, float]] = {
    "gpt-4-turbo-preview": {"input": 0.01, "output": 0.03},
    "gpt-4o-mini": {"input": 0.01, "output": 0.03},
    "gpt-4o": {"input": 0.01, "output": 0.03},
}


class PricingError(ValueError):
    """Raised when a model has no price entry."""


class ExchangeRateService:
    """Cached USD to GBP exchange rate with a static fallback."""

    def __init__(self, url: str, ttl_seconds: int, fallback_rate: float) -> None:
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.fallback_rate = fallback_rate
        self._rate: Optional[float] = None
        self._fetched_at: float = 0.0

    async def get_rate(self) -> float:
        """
        Get the USD to GBP rate.

        Returns the cached rate while it is fresh. On fetch failure the last
        cached rate is used, or the configured fallback when nothing was cached.
        """
        now = time.monotonic()
        if self._rate is not None and now - self._fetched_at < self.ttl_seconds:
            return self._rate

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(self.url)
                response.raise_for_status()
                rate = float(response.json()["rates"]["GBP"])
        except Exception as e:
            logger.warning(f"Exchange rate fetch failed, using {'cached' if self._rate else 'fallback'} rate: {e}")
            return self._rate if self._rate is not None else self.fallback_rate

        self._rate = rate
        self._fetched_at = now
        logger.debug(f"Exchange rate refreshed: 1 USD = {rate} GBP")
        return rate

    async def calculate_gbp_price(self, input_tokens: int, output_tokens: int, model: str) -> float:
        """
        Price a completion in GBP.

        Args:
            input_tokens: Prompt tokens
            output_tokens: Completion tokens
            model: Model name; must have a price entry

        Returns:
            Price in GBP rounded to 6 decimal places

        Raises:
            PricingError: If the model is not priced.
        """
        pricing = MODEL_PRICING.get(model)
        if pricing is None:
            raise PricingError("Invalid model for pricing")

        usd = (input_tokens / 1000) * pricing["input"] + (output_tokens / 1000) * pricing["output"]
        rate = await self.get_rate()
        return round(usd * rate, 6)


_exchange_service: Optional[ExchangeRateService] = None


def get_exchange_service() -> ExchangeRateService:
    """Dependency returning the process-wide exchange rate service."""
    global _exchange_service
    if _exchange_service is None:
        config = settings.exchange
        _exchange_service = ExchangeRateService(config.url, config.ttl_seconds, config.fallback_rate)
    return _exchange_service
