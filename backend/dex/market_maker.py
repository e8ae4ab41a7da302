"""
Synthetic Market-Making
───────────────────────
Seeds a symmetric bid/ask ladder around a reference price for pairs with
market making enabled, and keeps it fresh on the pair's refresh interval.

Ladder shape, for level i in 1..depth:
  • bid = ref × (1 − spread × i), ask = ref × (1 + spread × i)
  • amount = base amount × i, total = price × amount
  • bids best-first (descending), asks best-first (ascending)

Nothing here reacts to fills: there is no matching engine behind the book.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from .config import MarketMakingDefaults
from .errors import InvalidMarketMakingError
from .models import MarketMakingConfig, OrderBook, OrderLevel, utc_now_iso

if TYPE_CHECKING:
    from .pair_registry import PairRegistry

logger = logging.getLogger(__name__)


def build_ladder(reference_price: float, config: MarketMakingConfig) -> OrderBook:
    bids = []
    asks = []
    for level in range(1, config.depth + 1):
        bid_price = reference_price * (1 - config.spread * level)
        ask_price = reference_price * (1 + config.spread * level)
        amount = config.amount * level

        bids.append(OrderLevel(price=bid_price, amount=amount, total=bid_price * amount))
        asks.append(OrderLevel(price=ask_price, amount=amount, total=ask_price * amount))

    bids.sort(key=lambda o: o.price, reverse=True)
    asks.sort(key=lambda o: o.price)
    return OrderBook(bids=bids, asks=asks, last_update=utc_now_iso())


def make_config(defaults: MarketMakingDefaults, **overrides) -> MarketMakingConfig:
    """Merge caller overrides over the configured defaults, validating them."""
    config = MarketMakingConfig(
        spread=defaults.spread,
        depth=defaults.depth,
        amount=defaults.amount,
        refresh_interval_s=defaults.refresh_interval_s,
        price_source=defaults.price_source,
    )
    for key, value in overrides.items():
        if value is None:
            continue
        if not hasattr(config, key):
            raise InvalidMarketMakingError(f"Unknown market making option: {key}")
        setattr(config, key, value)

    if not 0 < config.spread < 1:
        raise InvalidMarketMakingError(f"spread must be between 0 and 1, got {config.spread}")
    if config.depth < 1:
        raise InvalidMarketMakingError(f"depth must be at least 1, got {config.depth}")
    if config.spread * config.depth >= 1:
        raise InvalidMarketMakingError(
            f"spread x depth must stay below 1 (got {config.spread} x {config.depth}), deeper bids would be priced at or below zero"
        )
    if config.amount <= 0:
        raise InvalidMarketMakingError(f"amount must be positive, got {config.amount}")
    if config.refresh_interval_s <= 0:
        raise InvalidMarketMakingError(f"refresh_interval_s must be positive, got {config.refresh_interval_s}")
    if config.price_source not in ("external", "internal"):
        raise InvalidMarketMakingError(f"price_source must be 'external' or 'internal', got {config.price_source}")
    return config


class MarketMakingScheduler:
    """
    Background task that asks the registry to re-seed every ladder whose
    refresh interval has elapsed. Ticks at ``tick_s``; each pair keeps its
    own interval.
    """

    def __init__(self, registry: "PairRegistry", tick_s: float = 1.0):
        self.registry = registry
        self.tick_s = tick_s
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._refreshes = 0

    async def start(self):
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"[MarketMaker] Refresh scheduler started (tick {self.tick_s}s)")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _loop(self):
        while self._running:
            try:
                self._refreshes += len(self.registry.refresh_market_making())
                await asyncio.sleep(self.tick_s)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[MarketMaker] Refresh error: {e}")
                await asyncio.sleep(self.tick_s)

    @property
    def is_running(self) -> bool:
        return self._running

    def get_stats(self):
        return {
            "running": self._running,
            "tick": self.tick_s,
            "refreshes": self._refreshes,
        }
