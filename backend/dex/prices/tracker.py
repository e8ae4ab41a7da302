"""
Price Tracker
─────────────
Keeps USD prices for registered rTokens in sync with CoinGecko:
  • One batched ``simple/price`` request per refresh for all enabled tokens
  • Per-id fallback: ids the upstream does not answer for (or every id, when
    the request fails outright) get mock quotes tagged ``source="mock"``
  • Bounded price history per token (oldest samples dropped first)
  • Threshold alerts that fire once per crossing and re-arm when cleared

Refreshes run in a background asyncio task every ``update_interval_s``;
a refresh that starts while another is still running is skipped.
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..config import PriceSyncConfig
from ..errors import (
    AlertNotFoundError, DexError, InvalidAlertError, PriceFeedError, TokenNotFoundError,
)
from ..events import DexEvent, EventBus, EventType
from ..models import utc_now_iso
from .coingecko import CoinGeckoClient, get_mock_price_data
from .models import AlertType, PriceAlert, PricePoint, PriceQuote, TrackedToken

logger = logging.getLogger(__name__)


class PriceTracker:

    def __init__(
        self,
        client: Optional[CoinGeckoClient] = None,
        config: Optional[PriceSyncConfig] = None,
        event_bus: Optional[EventBus] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or PriceSyncConfig()
        self.client = client or CoinGeckoClient(
            base_url=self.config.api_url,
            api_key=self.config.api_key,
            demo=self.config.demo_key,
            timeout=self.config.request_timeout_s,
        )
        self.event_bus = event_bus
        self._clock = clock

        self._tokens: Dict[str, TrackedToken] = {}
        self._cache: Dict[str, PriceQuote] = {}
        self._update_lock = asyncio.Lock()
        self._running = False
        self._task: Optional[asyncio.Task] = None

        self.last_update: Optional[str] = None
        self._updates = 0
        self._skipped_updates = 0
        self._upstream_failures = 0
        self._alerts_fired = 0

    # ─── Lifecycle ───────────────────────────────────────────────────────

    async def initialize(self):
        """Fetch once right away, then keep refreshing in the background."""
        logger.info("[PriceSync] Initializing price sync service")
        await self.update_all_prices()
        await self.start()

    async def start(self):
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._update_loop())
        logger.info(f"[PriceSync] Price updates scheduled every {self.config.update_interval_s}s")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("[PriceSync] Price sync service stopped")

    async def _update_loop(self):
        while self._running:
            try:
                await asyncio.sleep(self.config.update_interval_s)
                await self.update_all_prices()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[PriceSync] Scheduled price update failed: {e}")
                await asyncio.sleep(min(5.0, self.config.update_interval_s))

    @property
    def is_running(self) -> bool:
        return self._running

    # ─── Registration ────────────────────────────────────────────────────

    def register_token(
        self,
        coingecko_id: str,
        symbol: str,
        original_symbol: Optional[str] = None,
        alerts: Optional[Iterable[Dict[str, Any]]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Track ``symbol`` using CoinGecko's ``coingecko_id``. Returns the tracking id.

        Several symbols may share one CoinGecko id. Registering a symbol
        again replaces its record, history and alerts included.
        """
        coingecko_id = (coingecko_id or "").strip()
        symbol = (symbol or "").strip()
        if not coingecko_id or not symbol:
            raise DexError("Both a CoinGecko id and an rToken symbol are required")

        tracking_id = f"track_{symbol}_{int(self._clock() * 1000)}"
        if original_symbol is None:
            original_symbol = symbol[1:] if symbol.startswith("r") else symbol

        token = TrackedToken(
            tracking_id=tracking_id,
            coingecko_id=coingecko_id,
            symbol=symbol,
            original_symbol=original_symbol,
            history_limit=self.config.history_limit,
            metadata=dict(metadata or {}),
        )
        for alert in alerts or []:
            token.alerts.append(self._make_alert(alert.get("type"), alert.get("value")))

        self._tokens[symbol] = token
        logger.info(f"[PriceSync] Registered price tracking: {symbol} -> {coingecko_id}")
        return tracking_id

    def set_tracking_enabled(self, symbol: str, enabled: bool) -> TrackedToken:
        token = self._require(symbol)
        token.enabled = enabled
        logger.info(f"[PriceSync] Price tracking {'enabled' if enabled else 'disabled'} for {symbol}")
        return token

    # ─── Updates ─────────────────────────────────────────────────────────

    async def update_all_prices(self) -> Dict[str, str]:
        """Refresh every enabled token. Returns ``{symbol: source}`` for the tokens updated."""
        if self._update_lock.locked():
            self._skipped_updates += 1
            logger.warning("[PriceSync] Price update already in progress, skipping")
            return {}

        async with self._update_lock:
            if not self._tokens:
                logger.info("[PriceSync] No tokens to track")
                return {}

            enabled = [t for t in self._tokens.values() if t.enabled]
            if not enabled:
                logger.info("[PriceSync] No enabled tokens to track")
                return {}

            ids = list(dict.fromkeys(t.coingecko_id for t in enabled))
            logger.info(f"[PriceSync] Updating prices for {len(enabled)} tokens ({len(ids)} ids)")

            reason = "missing from upstream response"
            try:
                prices = await self.client.fetch_simple_prices(ids)
            except PriceFeedError as e:
                self._upstream_failures += 1
                logger.error(f"[PriceSync] CoinGecko API error: {e}")
                prices = {}
                reason = str(e)

            sources = {cg_id: "coingecko" for cg_id in prices}
            missing = [cg_id for cg_id in ids if cg_id not in prices]
            if missing:
                logger.warning(f"[PriceSync] Using mock price data for {len(missing)}/{len(ids)} ids: {', '.join(missing)}")
                prices.update(get_mock_price_data(missing))
                sources.update({cg_id: "mock" for cg_id in missing})
                self._emit(EventType.PRICE_FALLBACK, None, {"ids": missing, "reason": reason})

            updated = {}
            for token in enabled:
                source = sources[token.coingecko_id]
                self.update_token_price(token.symbol, prices[token.coingecko_id], source=source)
                updated[token.symbol] = source

            self._updates += 1
            self.last_update = utc_now_iso()
            logger.info(f"[PriceSync] Price update completed at {self.last_update}")
            return updated

    def update_token_price(
        self,
        symbol: str,
        price_data: Dict[str, Any],
        source: str = "coingecko",
    ) -> PriceQuote:
        """Record one sample in simple/price shape (``usd``, ``usd_24h_change``, ...)."""
        token = self._require(symbol)
        if price_data.get("usd") is None:
            raise DexError(f"Price data for {symbol} has no 'usd' field")

        try:
            new_price = float(price_data["usd"])
        except (TypeError, ValueError):
            raise DexError(f"Price data for {symbol} has a non-numeric 'usd': {price_data['usd']!r}")

        previous_price = token.last_price
        change = price_data.get("usd_24h_change")
        timestamp = utc_now_iso()

        token.last_price = new_price
        token.last_update = timestamp
        token.price_history.append(PricePoint(
            price=new_price,
            market_cap=price_data.get("usd_market_cap"),
            volume_24h=price_data.get("usd_24h_vol"),
            change_24h=change,
            timestamp=timestamp,
            source=source,
        ))

        quote = PriceQuote(
            symbol=symbol,
            price=new_price,
            change_24h=change,
            market_cap=price_data.get("usd_market_cap"),
            volume_24h=price_data.get("usd_24h_vol"),
            last_update=timestamp,
            source=source,
        )
        self._cache[symbol] = quote

        self.check_price_alerts(symbol, new_price, previous_price)

        change_str = f" ({change:+.2f}%)" if change is not None else ""
        logger.info(f"[PriceSync] Updated {symbol}: ${new_price}{change_str} [{source}]")
        return quote

    # ─── Alerts ──────────────────────────────────────────────────────────

    def check_price_alerts(
        self,
        symbol: str,
        current_price: float,
        previous_price: Optional[float],
    ) -> List[PriceAlert]:
        """Fire alerts whose condition just became true; re-arm those that cleared."""
        token = self._tokens.get(symbol)
        if not token or not token.alerts:
            return []

        fired = []
        for alert in token.alerts:
            met = alert.condition_met(current_price, previous_price)
            if met and not alert.triggered:
                self._trigger_alert(symbol, alert, current_price)
                alert.triggered = True
                alert.triggered_at = utc_now_iso()
                alert.trigger_count += 1
                fired.append(alert)
            elif not met and alert.triggered:
                alert.triggered = False
        return fired

    def _trigger_alert(self, symbol: str, alert: PriceAlert, current_price: float):
        self._alerts_fired += 1
        logger.warning(f"[PriceSync] PRICE ALERT: {symbol} {alert.type.value} {alert.value} (current: ${current_price})")
        self._emit(
            EventType.PRICE_ALERT,
            symbol,
            {"alertId": alert.id, "type": alert.type.value, "value": alert.value, "price": current_price},
        )

    def add_alert(self, symbol: str, alert_type: str, value: float) -> PriceAlert:
        token = self._require(symbol)
        alert = self._make_alert(alert_type, value)
        token.alerts.append(alert)
        logger.info(f"[PriceSync] Added alert for {symbol}: {alert.type.value} {alert.value}")
        return alert

    def remove_alert(self, symbol: str, alert_id: str) -> PriceAlert:
        token = self._require(symbol)
        alert = token.find_alert(alert_id)
        if not alert:
            raise AlertNotFoundError(alert_id)
        token.alerts.remove(alert)
        logger.info(f"[PriceSync] Removed alert {alert_id} for {symbol}")
        return alert

    @staticmethod
    def _make_alert(alert_type: Any, value: Any) -> PriceAlert:
        try:
            kind = AlertType(alert_type)
        except ValueError:
            allowed = ", ".join(t.value for t in AlertType)
            raise InvalidAlertError(f"Unknown alert type '{alert_type}' (expected one of: {allowed})")
        try:
            threshold = float(value)
        except (TypeError, ValueError):
            raise InvalidAlertError(f"Alert value must be numeric, got {value!r}")
        return PriceAlert(id=f"alert_{uuid.uuid4().hex[:12]}", type=kind, value=threshold)

    # ─── Queries ─────────────────────────────────────────────────────────

    def get_price(self, symbol: str) -> Optional[PriceQuote]:
        return self._cache.get(symbol)

    def get_price_history(self, symbol: str, limit: int = 24) -> List[PricePoint]:
        token = self._tokens.get(symbol)
        if not token or limit <= 0:
            return []
        return list(token.price_history)[-limit:]

    def get_all_prices(self) -> List[PriceQuote]:
        return list(self._cache.values())

    def get_pair_price(self, base_symbol: str, quote_symbol: str) -> Optional[float]:
        """Price of one ``base_symbol`` in ``quote_symbol`` from cached USD quotes."""
        base = self._cache.get(base_symbol)
        quote = self._cache.get(quote_symbol)
        if not base or not quote or not quote.price:
            return None
        return base.price / quote.price

    def get_tracked_token(self, symbol: str) -> Optional[TrackedToken]:
        return self._tokens.get(symbol)

    def list_tracked_tokens(self) -> List[TrackedToken]:
        return list(self._tokens.values())

    def get_status(self) -> Dict[str, Any]:
        return {
            "isRunning": self._running,
            "trackedTokens": len(self._tokens),
            "enabledTokens": sum(1 for t in self._tokens.values() if t.enabled),
            "lastUpdate": self.last_update,
            "updateInterval": self.config.update_interval_s,
            "cacheSize": len(self._cache),
            "mockPrices": sum(1 for q in self._cache.values() if q.is_mock),
            "updates": self._updates,
            "skippedUpdates": self._skipped_updates,
            "upstreamFailures": self._upstream_failures,
            "alertsFired": self._alerts_fired,
            "upstream": self.client.get_stats(),
        }

    # ─── Helpers ─────────────────────────────────────────────────────────

    def _require(self, symbol: str) -> TrackedToken:
        token = self._tokens.get(symbol)
        if not token:
            raise TokenNotFoundError(symbol)
        return token

    def _emit(self, event_type: EventType, symbol: Optional[str], data: Dict[str, Any]):
        if self.event_bus:
            self.event_bus.emit(DexEvent(event_type=event_type, source="price_tracker", symbol=symbol, data=data))
