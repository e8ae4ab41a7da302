import httpx
import pytest

from dex.config import MarketMakingDefaults, PriceSyncConfig
from dex.events import EventBus
from dex.pair_registry import PairRegistry
from dex.prices import CoinGeckoClient, PriceTracker


class FakeClock:
    """Manually advanced stand-in for ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def simple_price(usd, change=1.0):
    return {
        "usd": usd,
        "usd_market_cap": usd * 1_000_000,
        "usd_24h_vol": usd * 10_000,
        "usd_24h_change": change,
        "last_updated_at": 1_700_000_000,
    }


class FakeCoinGecko:
    """``httpx.MockTransport`` handler serving a mutable simple/price table."""

    def __init__(self, prices=None, status_code=200):
        self.prices = dict(prices or {})
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="upstream unavailable")
        ids = request.url.params.get("ids", "").split(",")
        return httpx.Response(200, json={i: self.prices[i] for i in ids if i in self.prices})

    def client(self) -> CoinGeckoClient:
        return CoinGeckoClient(api_key="test-key", transport=httpx.MockTransport(self))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_bus():
    return EventBus(history_limit=100)


@pytest.fixture
def registry(clock, event_bus):
    return PairRegistry(
        event_bus=event_bus,
        market_making_defaults=MarketMakingDefaults(refresh_interval_s=30.0),
        clock=clock,
    )


@pytest.fixture
def coingecko():
    return FakeCoinGecko({
        "bitcoin": simple_price(60000.0, 2.0),
        "ethereum": simple_price(3000.0, -1.5),
        "tether": simple_price(1.0, 0.0),
    })


@pytest.fixture
def tracker(coingecko, clock, event_bus):
    return PriceTracker(
        client=coingecko.client(),
        config=PriceSyncConfig(history_limit=5, update_interval_s=0.05),
        event_bus=event_bus,
        clock=clock,
    )
