import asyncio

import httpx
import pytest

from conftest import FakeCoinGecko, simple_price
from dex.config import PriceSyncConfig
from dex.errors import AlertNotFoundError, DexError, InvalidAlertError, TokenNotFoundError
from dex.events import EventType
from dex.prices import AlertType, CoinGeckoClient, PriceTracker


class TestRegistration:
    """Token registration and tracking flags"""

    def test_register_token(self, tracker):
        tracking_id = tracker.register_token("bitcoin", "rBTC")
        assert tracking_id.startswith("track_rBTC_")
        token = tracker.get_tracked_token("rBTC")
        assert token.coingecko_id == "bitcoin"
        assert token.original_symbol == "BTC"
        assert token.enabled is True
        assert token.last_price is None

    def test_register_requires_ids(self, tracker):
        with pytest.raises(DexError):
            tracker.register_token("", "rBTC")
        with pytest.raises(DexError):
            tracker.register_token("bitcoin", "  ")

    def test_shared_coingecko_id(self, tracker):
        tracker.register_token("tether", "rUSDT")
        tracker.register_token("tether", "rUSDT.e")
        assert len(tracker.list_tracked_tokens()) == 2

    def test_register_with_alerts(self, tracker):
        tracker.register_token("bitcoin", "rBTC", alerts=[{"type": "price_above", "value": "70000"}])
        alert = tracker.get_tracked_token("rBTC").alerts[0]
        assert alert.type == AlertType.PRICE_ABOVE
        assert alert.value == 70000.0

    def test_register_with_bad_alert(self, tracker):
        with pytest.raises(InvalidAlertError):
            tracker.register_token("bitcoin", "rBTC", alerts=[{"type": "moon", "value": 1}])
        assert tracker.get_tracked_token("rBTC") is None

    def test_set_tracking_enabled(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        assert tracker.set_tracking_enabled("rBTC", False).enabled is False
        with pytest.raises(TokenNotFoundError):
            tracker.set_tracking_enabled("rNOPE", True)


class TestUpdateTokenPrice:
    """Recording single samples"""

    def test_update_and_query(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        tracker.update_token_price("rBTC", {"usd": 65000, "usd_24h_change": 3.2})

        quote = tracker.get_price("rBTC")
        assert quote.price == 65000
        assert quote.change_24h == 3.2
        assert quote.source == "coingecko"
        history = tracker.get_price_history("rBTC", 1)
        assert len(history) == 1 and history[0].price == 65000

    def test_unknown_symbol(self, tracker):
        with pytest.raises(TokenNotFoundError):
            tracker.update_token_price("rNOPE", {"usd": 1})
        assert tracker.get_price("rNOPE") is None
        assert tracker.get_price_history("rNOPE") == []

    def test_missing_usd(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        with pytest.raises(DexError):
            tracker.update_token_price("rBTC", {"usd_24h_change": 1.0})

    def test_non_numeric_usd(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        with pytest.raises(DexError):
            tracker.update_token_price("rBTC", {"usd": "n/a"})
        assert tracker.get_price("rBTC") is None

    def test_history_is_bounded(self):
        tracker = PriceTracker(client=FakeCoinGecko().client(), config=PriceSyncConfig())
        tracker.register_token("bitcoin", "rBTC")
        for i in range(150):
            tracker.update_token_price("rBTC", {"usd": float(i)})

        history = tracker.get_price_history("rBTC", limit=1000)
        assert len(history) == 100, f"Expected 100 samples, got {len(history)}"
        assert history[0].price == 50.0, "Oldest 50 samples should be dropped"
        assert history[-1].price == 149.0

    def test_history_limit(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        for i in range(4):
            tracker.update_token_price("rBTC", {"usd": float(i)})
        assert [p.price for p in tracker.get_price_history("rBTC", limit=2)] == [2.0, 3.0]
        assert tracker.get_price_history("rBTC", limit=0) == []

    def test_pair_price(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        tracker.register_token("ethereum", "rETH")
        tracker.update_token_price("rBTC", {"usd": 60000})
        tracker.update_token_price("rETH", {"usd": 3000})
        assert tracker.get_pair_price("rBTC", "rETH") == pytest.approx(20.0)
        assert tracker.get_pair_price("rBTC", "rSOL") is None


class TestAlerts:
    """Edge-triggered threshold alerts"""

    def _feed(self, tracker, symbol, prices):
        for p in prices:
            tracker.update_token_price(symbol, {"usd": p})

    def test_price_above_triggers_on_each_crossing(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        alert = tracker.add_alert("rBTC", "price_above", 100)
        self._feed(tracker, "rBTC", [99, 101, 101, 99, 101])
        assert alert.trigger_count == 2

    def test_price_above_fires_once_while_condition_holds(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        alert = tracker.add_alert("rBTC", "price_above", 100)
        self._feed(tracker, "rBTC", [101, 102])
        assert alert.trigger_count == 1
        assert alert.triggered is True
        assert alert.triggered_at is not None

    def test_price_below(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        alert = tracker.add_alert("rBTC", "price_below", 50)
        self._feed(tracker, "rBTC", [60, 40, 45, 55])
        assert alert.trigger_count == 1
        assert alert.triggered is False, "Alert re-arms once the price recovers"

    def test_change_alert_needs_previous_price(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        alert = tracker.add_alert("rBTC", "change_above", 5)
        self._feed(tracker, "rBTC", [1000])
        assert alert.trigger_count == 0
        self._feed(tracker, "rBTC", [1100])
        assert alert.trigger_count == 1

    def test_change_below(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        alert = tracker.add_alert("rBTC", "change_below", -5)
        fired = tracker.check_price_alerts("rBTC", 90, 100)
        assert fired == [alert]

    def test_alert_publishes_event(self, tracker, event_bus):
        tracker.register_token("bitcoin", "rBTC")
        tracker.add_alert("rBTC", "price_above", 100)
        self._feed(tracker, "rBTC", [150])
        events = event_bus.get_history(event_type=EventType.PRICE_ALERT.value)
        assert len(events) == 1
        assert events[0]["data"]["price"] == 150

    def test_invalid_alerts(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        with pytest.raises(InvalidAlertError):
            tracker.add_alert("rBTC", "moon", 1)
        with pytest.raises(InvalidAlertError):
            tracker.add_alert("rBTC", "price_above", "lots")
        with pytest.raises(TokenNotFoundError):
            tracker.add_alert("rNOPE", "price_above", 1)

    def test_remove_alert(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        alert = tracker.add_alert("rBTC", "price_above", 1)
        assert tracker.remove_alert("rBTC", alert.id).id == alert.id
        assert tracker.get_tracked_token("rBTC").alerts == []
        with pytest.raises(AlertNotFoundError):
            tracker.remove_alert("rBTC", alert.id)


class TestUpdateAllPrices:
    """Batched refresh with per-id mock fallback"""

    def test_batched_request(self, tracker, coingecko):
        tracker.register_token("bitcoin", "rBTC")
        tracker.register_token("ethereum", "rETH")
        tracker.register_token("tether", "rUSDT")
        tracker.register_token("tether", "rUSDT.e")

        updated = asyncio.run(tracker.update_all_prices())
        assert updated == {"rBTC": "coingecko", "rETH": "coingecko", "rUSDT": "coingecko", "rUSDT.e": "coingecko"}
        assert len(coingecko.requests) == 1, "All ids go into one request"
        assert coingecko.requests[0].url.params["ids"] == "bitcoin,ethereum,tether"
        assert tracker.get_price("rBTC").price == 60000.0
        assert tracker.get_status()["updates"] == 1

    def test_partial_answer_falls_back_per_id(self, tracker, event_bus):
        tracker.register_token("bitcoin", "rBTC")
        tracker.register_token("rsa-chain", "rRSA")

        updated = asyncio.run(tracker.update_all_prices())
        assert updated == {"rBTC": "coingecko", "rRSA": "mock"}
        assert tracker.get_price("rRSA").price == 0.85
        assert tracker.get_price("rRSA").is_mock
        assert not tracker.get_price("rBTC").is_mock

        events = event_bus.get_history(event_type=EventType.PRICE_FALLBACK.value)
        assert events[-1]["data"]["ids"] == ["rsa-chain"]

    def test_upstream_failure_falls_back_for_all(self, coingecko, event_bus):
        coingecko.status_code = 500
        tracker = PriceTracker(client=coingecko.client(), event_bus=event_bus)
        tracker.register_token("bitcoin", "rBTC")
        tracker.register_token("ethereum", "rETH")

        updated = asyncio.run(tracker.update_all_prices())
        assert updated == {"rBTC": "mock", "rETH": "mock"}
        assert tracker.get_price("rBTC").price == 65000.50
        assert tracker.get_price("rETH").price == 3500.75
        assert tracker.get_status()["upstreamFailures"] == 1
        assert tracker.get_status()["mockPrices"] == 2

    def test_malformed_quote_falls_back_for_that_id(self, tracker, coingecko, event_bus):
        coingecko.prices["ethereum"] = {"usd": "n/a", "usd_24h_change": 1.0}
        tracker.register_token("bitcoin", "rBTC")
        tracker.register_token("ethereum", "rETH")
        tracker.register_token("tether", "rUSDT")

        updated = asyncio.run(tracker.update_all_prices())
        assert updated == {"rBTC": "coingecko", "rETH": "mock", "rUSDT": "coingecko"}
        assert tracker.get_price("rETH").price == 3500.75
        assert tracker.get_price("rUSDT").price == 1.0, "Tokens after the bad one still update"
        assert tracker.last_update is not None
        assert tracker.get_status()["updates"] == 1
        events = event_bus.get_history(event_type=EventType.PRICE_FALLBACK.value)
        assert events[-1]["data"]["ids"] == ["ethereum"]

    def test_network_error_falls_back(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = CoinGeckoClient(transport=httpx.MockTransport(refuse))
        tracker = PriceTracker(client=client)
        tracker.register_token("shiba-inu", "rSHIB")
        assert asyncio.run(tracker.update_all_prices()) == {"rSHIB": "mock"}

    def test_disabled_tokens_are_skipped(self, tracker, coingecko):
        tracker.register_token("bitcoin", "rBTC")
        tracker.register_token("ethereum", "rETH")
        tracker.set_tracking_enabled("rETH", False)

        assert asyncio.run(tracker.update_all_prices()) == {"rBTC": "coingecko"}
        assert coingecko.requests[0].url.params["ids"] == "bitcoin"

    def test_nothing_to_track(self, tracker, coingecko):
        assert asyncio.run(tracker.update_all_prices()) == {}
        tracker.register_token("bitcoin", "rBTC")
        tracker.set_tracking_enabled("rBTC", False)
        assert asyncio.run(tracker.update_all_prices()) == {}
        assert coingecko.requests == []

    def test_overlapping_update_is_skipped(self, coingecko):
        release = asyncio.Event()

        class SlowClient(CoinGeckoClient):
            async def fetch_simple_prices(self, ids):
                await release.wait()
                return {"bitcoin": simple_price(1.0)}

        async def run():
            tracker = PriceTracker(client=SlowClient())
            tracker.register_token("bitcoin", "rBTC")
            first = asyncio.create_task(tracker.update_all_prices())
            await asyncio.sleep(0)
            second = await tracker.update_all_prices()
            release.set()
            return await first, second, tracker.get_status()

        first, second, status = asyncio.run(run())
        assert first == {"rBTC": "coingecko"}
        assert second == {}, "A run started during another one is skipped"
        assert status["skippedUpdates"] == 1


class TestLifecycle:
    """Background update loop"""

    def test_initialize_updates_then_schedules(self, tracker, coingecko):
        tracker.register_token("bitcoin", "rBTC")

        async def run():
            await tracker.initialize()
            assert tracker.is_running
            assert len(coingecko.requests) == 1, "First update happens right away"
            await asyncio.sleep(0.12)
            await tracker.stop()

        asyncio.run(run())
        assert not tracker.is_running
        assert len(coingecko.requests) >= 2, "Loop should have refreshed at least once more"

    def test_status(self, tracker):
        tracker.register_token("bitcoin", "rBTC")
        status = tracker.get_status()
        assert status["isRunning"] is False
        assert status["trackedTokens"] == 1
        assert status["updateInterval"] == 0.05
        assert status["upstream"]["authenticated"] is True
