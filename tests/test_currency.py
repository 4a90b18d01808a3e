import asyncio

import httpx
import pytest

from travel_ai.errors import CurrencyConversionUnavailable
from travel_ai.tools.currency import CurrencyConverter, is_supported, supported_currencies

PRIMARY = "https://rates.test/v4/latest"
SECONDARY = "https://backup.test/v1/latest"


def _converter(handler, cache_ttl=3600):
    return CurrencyConverter(
        api_url=PRIMARY,
        fallback_url=SECONDARY,
        cache_ttl=cache_ttl,
        transport=httpx.MockTransport(handler),
    )


def test_primary_api_rates_are_used():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json={"base": "EUR", "rates": {"USD": 1.1, "TRY": 38.0}})

    result = asyncio.run(_converter(handler).convert(100, "eur", "usd"))

    assert seen == [f"{PRIMARY}/EUR"]
    assert result.converted_amount == 110.0
    assert result.rate == 1.1
    assert result.source == "exchangerate-api"
    assert not result.is_fallback


def test_secondary_api_is_tried_when_primary_fails():
    seen = []

    def handler(request):
        seen.append(request.url.host)
        if request.url.host == "rates.test":
            return httpx.Response(503)
        assert request.url.params["base"] == "GBP"
        return httpx.Response(200, json={"base": "GBP", "rates": {"USD": 1.25}})

    result = asyncio.run(_converter(handler).convert(200, "GBP", "USD"))

    assert seen == ["rates.test", "backup.test"]
    assert result.converted_amount == 250.0
    assert result.source == "fxratesapi"


def test_static_table_when_both_apis_fail():
    def handler(request):
        raise httpx.ConnectError("network down", request=request)

    result = asyncio.run(_converter(handler).convert(100, "USD", "EUR"))

    assert result.source == "fallback"
    assert result.is_fallback
    assert result.converted_amount == 85.0


def test_malformed_payload_counts_as_failure():
    def handler(request):
        return httpx.Response(200, json={"unexpected": True})

    result = asyncio.run(_converter(handler).convert(10, "TRY", "USD"))

    assert result.source == "fallback"
    assert result.converted_amount == 0.29


def test_same_currency_is_identity_without_network():
    def handler(request):
        raise AssertionError("no request expected")

    result = asyncio.run(_converter(handler).convert(99.999, "usd", "USD"))

    assert result.source == "identity"
    assert result.rate == 1.0
    assert result.converted_amount == 100.0


def test_unknown_pair_raises():
    def handler(request):
        return httpx.Response(500)

    converter = _converter(handler)

    with pytest.raises(CurrencyConversionUnavailable):
        asyncio.run(converter.convert(100, "USD", "JPY"))
    with pytest.raises(CurrencyConversionUnavailable):
        asyncio.run(converter.convert(100, "CHF", "USD"))


def test_rates_are_cached_per_base():
    calls = []

    def handler(request):
        calls.append(str(request.url))
        return httpx.Response(200, json={"base": "USD", "rates": {"EUR": 0.9, "TRY": 35.0}})

    converter = _converter(handler)

    async def scenario():
        await converter.convert(1, "USD", "EUR")
        await converter.convert(2, "USD", "TRY")
        converter.clear_cache()
        await converter.convert(3, "USD", "EUR")

    asyncio.run(scenario())

    assert len(calls) == 2


def test_static_rates_are_not_cached():
    calls = []

    def handler(request):
        calls.append(request.url.host)
        return httpx.Response(502)

    converter = _converter(handler)

    async def scenario():
        await converter.convert(1, "USD", "EUR")
        await converter.convert(1, "USD", "EUR")

    asyncio.run(scenario())

    assert calls == ["rates.test", "backup.test", "rates.test", "backup.test"]


def test_supported_currency_helpers():
    assert "TRY" in supported_currencies()
    assert is_supported("try")
    assert not is_supported("XYZ")
    assert not is_supported(None)
