from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import os
import time

import httpx

from travel_ai.config import settings
from travel_ai.errors import CurrencyConversionUnavailable

import logging

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRAVEL_AI_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False

SUPPORTED_CURRENCIES = ["USD", "EUR", "TRY", "GBP", "CAD", "AUD", "JPY", "CHF", "CNY", "INR"]

# Approximate rates for when both rate providers are unreachable.
FALLBACK_RATES: Dict[str, Dict[str, float]] = {
    "USD": {"EUR": 0.85, "GBP": 0.73, "TRY": 34.20, "USD": 1.0},
    "EUR": {"USD": 1.18, "GBP": 0.86, "TRY": 40.24, "EUR": 1.0},
    "TRY": {"USD": 0.029, "EUR": 0.025, "GBP": 0.021, "TRY": 1.0},
    "GBP": {"USD": 1.37, "EUR": 1.16, "TRY": 46.85, "GBP": 1.0},
}


@dataclass
class RateTable:
    base: str
    rates: Dict[str, float]
    source: str
    fetched_at: float = field(default_factory=time.time)


@dataclass
class ConversionResult:
    original_amount: float
    converted_amount: float
    rate: float
    from_currency: str
    to_currency: str
    source: str

    @property
    def is_fallback(self) -> bool:
        return self.source == "fallback"


class CurrencyConverter:
    """Exchange-rate lookup with a primary API, a secondary API and a static table.

    Rate tables are cached per base currency for ``cache_ttl`` seconds. Network
    failures never propagate: the static table is the last resort, and only a
    pair missing from every source raises ``CurrencyConversionUnavailable``.
    """

    def __init__(
        self,
        *,
        api_url: Optional[str] = None,
        fallback_url: Optional[str] = None,
        cache_ttl: Optional[int] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = (api_url or settings.currency_api_url).rstrip("/")
        self.fallback_url = fallback_url or settings.currency_fallback_url
        self.cache_ttl = settings.currency_cache_ttl if cache_ttl is None else cache_ttl
        self.timeout = timeout
        self._transport = transport
        self._cache: Dict[str, Tuple[float, RateTable]] = {}

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Dict:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(url, params=params, headers={"User-Agent": "travel-ai/1.0"})
            response.raise_for_status()
            return response.json()

    async def _fetch_rates(self, base: str) -> RateTable:
        try:
            data = await self._get_json(f"{self.api_url}/{base}")
            return RateTable(base=data.get("base", base), rates=dict(data["rates"]), source="exchangerate-api")
        except (httpx.HTTPError, KeyError, ValueError) as primary_error:
            logger.warning("Primary currency API failed for %s, trying fallback: %s", base, primary_error)

        data = await self._get_json(self.fallback_url, params={"base": base})
        return RateTable(base=data.get("base", base), rates=dict(data["rates"]), source="fxratesapi")

    def _fallback_rates(self, base: str) -> RateTable:
        rates = FALLBACK_RATES.get(base)
        if rates is None:
            raise CurrencyConversionUnavailable(f"No fallback rates available for {base}")
        logger.warning("Using static fallback exchange rates for %s", base)
        return RateTable(base=base, rates=dict(rates), source="fallback")

    async def get_rates(self, base: str) -> RateTable:
        base = base.upper()
        cached = self._cache.get(base)
        now = time.monotonic()
        if cached and cached[0] > now:
            logger.debug("Exchange rates cache hit for %s", base)
            return cached[1]

        try:
            table = await self._fetch_rates(base)
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.error("Both currency APIs failed for %s: %s", base, exc)
            return self._fallback_rates(base)

        self._cache[base] = (now + self.cache_ttl, table)
        logger.info("Exchange rates fetched for %s from %s (%d rates)", base, table.source, len(table.rates))
        return table

    async def convert(self, amount: float, from_currency: str, to_currency: str) -> ConversionResult:
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return ConversionResult(amount, round(amount, 2), 1.0, from_currency, to_currency, "identity")

        table = await self.get_rates(from_currency)
        rate = table.rates.get(to_currency)
        if rate is None:
            raise CurrencyConversionUnavailable(f"Unable to convert {from_currency} to {to_currency}")

        converted = round(amount * float(rate), 2)
        logger.debug("Converted %s %s -> %s %s at %s", amount, from_currency, converted, to_currency, rate)
        return ConversionResult(amount, converted, float(rate), from_currency, to_currency, table.source)

    def clear_cache(self) -> None:
        self._cache.clear()


def supported_currencies() -> List[str]:
    return list(SUPPORTED_CURRENCIES)


def is_supported(code: str) -> bool:
    return (code or "").upper() in SUPPORTED_CURRENCIES
