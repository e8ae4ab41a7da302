"""
CoinGecko simple/price client.
Public API:  https://api.coingecko.com/api/v3   (demo keys)
Pro API:     https://pro-api.coingecko.com/api/v3
"""

import logging
import math
import random
import time
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..errors import PriceFeedError

logger = logging.getLogger(__name__)

COINGECKO_PUBLIC_BASE = "https://api.coingecko.com/api/v3"
COINGECKO_PRO_BASE = "https://pro-api.coingecko.com/api/v3"

#: Fallback quotes for well known ids, in the simple/price response shape
MOCK_PRICES: Dict[str, Dict[str, float]] = {
    "shiba-inu": {
        "usd": 0.000012,
        "usd_market_cap": 7_000_000_000,
        "usd_24h_vol": 200_000_000,
        "usd_24h_change": -2.5,
    },
    "ethereum": {
        "usd": 3500.75,
        "usd_market_cap": 420_000_000_000,
        "usd_24h_vol": 15_000_000_000,
        "usd_24h_change": 1.8,
    },
    "bitcoin": {
        "usd": 65000.50,
        "usd_market_cap": 1_280_000_000_000,
        "usd_24h_vol": 28_000_000_000,
        "usd_24h_change": 3.2,
    },
    "rsa-chain": {
        "usd": 0.85,
        "usd_market_cap": 50_000_000,
        "usd_24h_vol": 1_250_000,
        "usd_24h_change": 2.5,
    },
}


def get_mock_price_data(coingecko_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
    """Demo quotes for ``coingecko_ids``.

    Known ids get the static table above; any other id gets values seeded
    from the id itself, so the same id always maps to the same mock quote.
    """
    now = int(time.time())
    result = {}
    for cg_id in coingecko_ids:
        if cg_id in MOCK_PRICES:
            data = dict(MOCK_PRICES[cg_id])
        else:
            rng = random.Random(cg_id)
            data = {
                "usd": round(rng.uniform(0.01, 100), 6),
                "usd_market_cap": round(rng.uniform(0, 1_000_000_000), 2),
                "usd_24h_vol": round(rng.uniform(0, 10_000_000), 2),
                "usd_24h_change": round(rng.uniform(-10, 10), 2),
            }
        data["last_updated_at"] = now
        result[cg_id] = data
    return result


_OPTIONAL_FIELDS = ("usd_market_cap", "usd_24h_vol", "usd_24h_change")


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _normalize_quote(quote: Any) -> Optional[Dict[str, Any]]:
    """A copy of ``quote`` with numeric fields as floats, or ``None`` if ``usd`` is unusable."""
    if not isinstance(quote, dict):
        return None
    usd = _to_number(quote.get("usd"))
    if usd is None or usd < 0:
        return None
    normalized = dict(quote)
    normalized["usd"] = usd
    for key in _OPTIONAL_FIELDS:
        if key in normalized:
            normalized[key] = _to_number(normalized[key])
    return normalized


class CoinGeckoClient:
    """Minimal async client for the ``simple/price`` endpoint."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: str = "",
        demo: bool = True,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = (api_key or "").strip()
        self._demo = demo
        if base_url:
            self._base = base_url.rstrip("/")
        else:
            self._base = COINGECKO_PUBLIC_BASE if demo or not self._api_key else COINGECKO_PRO_BASE
        self._timeout = timeout
        self._transport = transport
        self._requests = 0
        self._failures = 0

    @property
    def base_url(self) -> str:
        return self._base

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self._api_key:
            if self._demo:
                headers["x-cg-demo-api-key"] = self._api_key
            else:
                headers["x-cg-pro-api-key"] = self._api_key
        return headers

    async def fetch_simple_prices(self, coingecko_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """USD price, market cap, 24h volume and 24h change per id.

        Ids CoinGecko does not know, and entries whose ``usd`` is not a finite
        non-negative number, are absent from the result.

        :raise PriceFeedError:
            Network error, non-2xx status (including 429 throttling) or an
            unexpected payload.
        """
        if not coingecko_ids:
            return {}

        params = {
            "ids": ",".join(coingecko_ids),
            "vs_currencies": "usd",
            "include_market_cap": "true",
            "include_24hr_vol": "true",
            "include_24hr_change": "true",
            "include_last_updated_at": "true",
        }
        self._requests += 1
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                r = await client.get(f"{self._base}/simple/price", params=params, headers=self._headers())
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPStatusError as e:
            self._failures += 1
            if e.response.status_code == 429:
                logger.warning("[CoinGecko] Rate limited")
            raise PriceFeedError(
                f"CoinGecko error: {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            self._failures += 1
            raise PriceFeedError(f"CoinGecko request failed: {e}") from e

        if not isinstance(data, dict):
            self._failures += 1
            raise PriceFeedError(f"Unexpected CoinGecko payload: {type(data).__name__}")

        prices = {}
        for cg_id, quote in data.items():
            normalized = _normalize_quote(quote)
            if normalized is None:
                logger.warning(f"[CoinGecko] Dropping unusable quote for {cg_id}: {quote!r:.120}")
                continue
            prices[cg_id] = normalized
        return prices

    def get_stats(self) -> Dict[str, Any]:
        return {
            "baseUrl": self._base,
            "requests": self._requests,
            "failures": self._failures,
            "authenticated": bool(self._api_key),
        }
