"""
Trading Pair Registry
─────────────────────
Creates and manages trading pairs for rTokens:
  • Fee tier derived once from static allow-lists (stable / standard / exotic)
  • Pairs stored by id, with a symbol → id lookup ("rSHIB/rUSDT" → pair id)
  • A zeroed liquidity-pool record per pair
  • Optional synthetic market making that seeds and refreshes an order ladder

Ids embed the creation time in milliseconds, so creating the same pair
twice yields two records; the symbol lookup follows the newest one and the
older record stays reachable by id only.

Lookups return ``None`` for unknown symbols; mutations raise ``DexError``.
"""

import logging
import time
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import MarketMakingDefaults
from .errors import DexError, InvalidPairError, PairNotFoundError
from .events import DexEvent, EventBus, EventType
from .fees import categorize_pair, determine_fee, fee_rate, generate_pair_tags
from .market_maker import build_ladder, make_config
from .models import LiquidityPool, PairStatus, TradingPair, utc_now_iso
from .store import InMemoryPairStore, PairStore

logger = logging.getLogger(__name__)

#: (base_token, quote_token) -> price of one base in quote, or None
PriceLookup = Callable[[str, str], Optional[float]]


class PairRegistry:

    def __init__(
        self,
        store: Optional[PairStore] = None,
        event_bus: Optional[EventBus] = None,
        market_making_defaults: Optional[MarketMakingDefaults] = None,
        price_lookup: Optional[PriceLookup] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store or InMemoryPairStore()
        self.event_bus = event_bus
        self.mm_defaults = market_making_defaults or MarketMakingDefaults()
        self._price_lookup = price_lookup
        self._clock = clock

    def set_price_lookup(self, fn: Optional[PriceLookup]):
        self._price_lookup = fn

    # ─── Creation ────────────────────────────────────────────────────────

    def create_default_pairs(
        self,
        base_token: str,
        quote_tokens: Optional[Iterable[str]] = None,
        **options,
    ) -> List[TradingPair]:
        """Create ``base_token``/quote for every quote; failures are logged and skipped."""
        if quote_tokens is None:
            quote_tokens = ["rUSDT", "rETH", "rBTC"]

        logger.info(f"[Pairs] Creating default trading pairs for {base_token}")
        created = []
        for quote_token in quote_tokens:
            try:
                created.append(self.create_trading_pair(base_token, quote_token, **options))
            except DexError as e:
                logger.error(f"[Pairs] Failed to create pair {base_token}/{quote_token}: {e}")
        return created

    def create_trading_pair(
        self,
        base_token: str,
        quote_token: str,
        min_trade_amount: Optional[float] = None,
        max_trade_amount: Optional[float] = None,
        price_decimals: Optional[int] = None,
        amount_decimals: Optional[int] = None,
        tick_size: Optional[float] = None,
        step_size: Optional[float] = None,
        metadata: Optional[Dict[str, Any]] = None,
        create_liquidity_pool: bool = True,
        enable_market_making: bool = False,
        market_making: Optional[Dict[str, Any]] = None,
    ) -> TradingPair:
        base_token = (base_token or "").strip()
        quote_token = (quote_token or "").strip()
        if not base_token or not quote_token:
            raise InvalidPairError("Base and quote tokens are required")
        if base_token == quote_token:
            raise InvalidPairError(f"Cannot pair {base_token} with itself")

        pair_symbol = f"{base_token}/{quote_token}"
        pair_id = self.generate_pair_id(base_token, quote_token)

        existing = self.store.get_pair(pair_id)
        if existing:
            logger.warning(f"[Pairs] Trading pair already exists: {pair_symbol}")
            return existing

        fee_tier = determine_fee(base_token, quote_token)
        category = categorize_pair(base_token, quote_token)

        pair = TradingPair(
            id=pair_id,
            symbol=pair_symbol,
            base_token=base_token,
            quote_token=quote_token,
            fee_tier=fee_tier,
            fee_rate=fee_rate(fee_tier),
            metadata={
                "description": f"{base_token} to {quote_token} trading pair",
                "category": category,
                "tags": generate_pair_tags(base_token, quote_token),
                **(metadata or {}),
            },
        )
        limits = {
            "min_trade_amount": min_trade_amount,
            "max_trade_amount": max_trade_amount,
            "price_decimals": price_decimals,
            "amount_decimals": amount_decimals,
            "tick_size": tick_size,
            "step_size": step_size,
        }
        for name, value in limits.items():
            if value is not None:
                setattr(pair, name, value)

        previous_id = self.store.resolve_symbol(pair_symbol)
        if previous_id:
            logger.warning(f"[Pairs] {pair_symbol} re-registered: {previous_id} → {pair_id}")

        self.store.save_pair(pair)
        self.store.bind_symbol(pair_symbol, pair_id)

        if create_liquidity_pool:
            self._initialize_liquidity_pool(pair)

        if enable_market_making:
            pair = self.setup_market_making(pair_symbol, **(market_making or {}))

        logger.info(f"[Pairs] Created trading pair: {pair_symbol} (ID: {pair_id}, tier {fee_tier.value})")
        self._emit(EventType.PAIR_CREATED, pair_symbol, {"pairId": pair_id, "feeTier": fee_tier.value})
        return pair

    def generate_pair_id(self, base_token: str, quote_token: str) -> str:
        combined = f"{base_token}_{quote_token}".lower()
        return f"pair_{combined}_{int(self._clock() * 1000)}"

    def _initialize_liquidity_pool(self, pair: TradingPair):
        pool = LiquidityPool(
            pair_id=pair.id,
            symbol=pair.symbol,
            base_token=pair.base_token,
            quote_token=pair.quote_token,
            fee_rate=pair.fee_rate,
        )
        self.store.save_pool(pool)
        logger.info(f"[Pairs] Initialized liquidity pool for {pair.symbol}")

    # ─── Market Making ───────────────────────────────────────────────────

    def setup_market_making(self, pair_symbol: str, **config) -> TradingPair:
        """Enable market making on a pair and seed its ladder right away."""
        pair = self._require(pair_symbol)
        mm = make_config(self.mm_defaults, **config)
        pair.market_making = mm
        self._seed_ladder(pair, self._clock())
        self.store.save_pair(pair)
        logger.info(
            f"[MarketMaker] Enabled for {pair.symbol}: spread {mm.spread}, depth {mm.depth}, "
            f"refresh every {mm.refresh_interval_s}s"
        )
        return pair

    def refresh_market_making(self, now: Optional[float] = None) -> List[str]:
        """Re-seed every active market-made pair whose refresh interval elapsed."""
        now = self._clock() if now is None else now
        refreshed = []
        for pair in self.store.list_pairs():
            mm = pair.market_making
            if not mm or not mm.enabled or pair.status != PairStatus.ACTIVE:
                continue
            if self.store.resolve_symbol(pair.symbol) != pair.id:
                continue  # superseded by a newer record for the same symbol
            if mm.last_refresh is not None and now - mm.last_refresh < mm.refresh_interval_s:
                continue
            self._seed_ladder(pair, now)
            self.store.save_pair(pair)
            refreshed.append(pair.symbol)
            self._emit(
                EventType.ORDER_BOOK_REFRESHED,
                pair.symbol,
                {"pairId": pair.id, "referencePrice": mm.reference_price},
            )
        return refreshed

    def _seed_ladder(self, pair: TradingPair, now: float):
        mm = pair.market_making
        reference = self._reference_price(pair)
        pair.order_book = build_ladder(reference, mm)
        mm.reference_price = reference
        mm.last_refresh = now
        pair.last_update = utc_now_iso()
        logger.debug(f"[MarketMaker] {pair.symbol} ladder seeded around {reference}")

    def _reference_price(self, pair: TradingPair) -> float:
        mm = pair.market_making
        price = None
        if mm.price_source == "internal":
            price = pair.last_price
        elif self._price_lookup:
            try:
                price = self._price_lookup(pair.base_token, pair.quote_token)
            except Exception as e:
                logger.warning(f"[MarketMaker] Price lookup failed for {pair.symbol}: {e}")
                price = None
        if price and price > 0:
            return price
        return self.mm_defaults.base_price

    # ─── Queries ─────────────────────────────────────────────────────────

    def get_trading_pair(self, pair_symbol: str) -> Optional[TradingPair]:
        pair_id = self.store.resolve_symbol(pair_symbol)
        return self.store.get_pair(pair_id) if pair_id else None

    def get_pair_by_id(self, pair_id: str) -> Optional[TradingPair]:
        return self.store.get_pair(pair_id)

    def list_trading_pairs(
        self,
        base_token: Optional[str] = None,
        quote_token: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[TradingPair]:
        pairs = self.store.list_pairs()
        if base_token:
            pairs = [p for p in pairs if p.base_token == base_token]
        if quote_token:
            pairs = [p for p in pairs if p.quote_token == quote_token]
        if category:
            pairs = [p for p in pairs if p.category == category]
        if status:
            pairs = [p for p in pairs if p.status.value == status]

        pairs.sort(key=lambda p: p.volume_24h or 0, reverse=True)
        return pairs

    def get_liquidity_pool(self, pair_symbol: str) -> Optional[LiquidityPool]:
        pair_id = self.store.resolve_symbol(pair_symbol)
        return self.store.get_pool(pair_id) if pair_id else None

    def get_stats(self) -> Dict[str, Any]:
        pairs = self.store.list_pairs()
        by_category: Dict[str, int] = defaultdict(int)
        for p in pairs:
            by_category[p.category or "unknown"] += 1

        top = sorted(pairs, key=lambda p: p.volume_24h or 0, reverse=True)[:10]
        return {
            "totalPairs": len(pairs),
            "activePairs": sum(1 for p in pairs if p.status == PairStatus.ACTIVE),
            "totalVolume24h": sum(p.volume_24h or 0 for p in pairs),
            "totalTrades24h": sum(p.trades_24h or 0 for p in pairs),
            "pairsByCategory": dict(by_category),
            "topPairsByVolume": [{"symbol": p.symbol, "volume24h": p.volume_24h} for p in top],
            "storage": self.store.backend,
        }

    # ─── Mutations ───────────────────────────────────────────────────────

    def update_pair_status(self, pair_symbol: str, status: str) -> TradingPair:
        try:
            new_status = PairStatus(status)
        except ValueError:
            allowed = ", ".join(s.value for s in PairStatus)
            raise InvalidPairError(f"Invalid status '{status}' (expected one of: {allowed})")

        pair = self._require(pair_symbol)
        old_status = pair.status
        pair.status = new_status
        pair.last_update = utc_now_iso()
        self.store.save_pair(pair)

        logger.info(f"[Pairs] Updated {pair_symbol} status to: {new_status.value}")
        self._emit(
            EventType.PAIR_STATUS_CHANGED,
            pair_symbol,
            {"from": old_status.value, "to": new_status.value},
        )
        return pair

    def update_pair_stats(
        self,
        pair_symbol: str,
        last_price: Optional[float] = None,
        volume_24h: Optional[float] = None,
        high_24h: Optional[float] = None,
        low_24h: Optional[float] = None,
        change_24h: Optional[float] = None,
        trades_24h: Optional[int] = None,
    ) -> TradingPair:
        """Overwrite the given statistics; ``None`` leaves a field unchanged."""
        pair = self._require(pair_symbol)
        stats = {
            "last_price": last_price,
            "volume_24h": volume_24h,
            "high_24h": high_24h,
            "low_24h": low_24h,
            "change_24h": change_24h,
            "trades_24h": trades_24h,
        }
        for name, value in stats.items():
            if value is not None:
                setattr(pair, name, value)
        pair.last_update = utc_now_iso()
        self.store.save_pair(pair)
        return pair

    def remove_trading_pair(self, pair_symbol: str) -> TradingPair:
        """Drop the pair its symbol points at, the symbol entry and the pool."""
        pair = self._require(pair_symbol)
        self.store.delete_pair(pair.id)
        self.store.unbind_symbol(pair_symbol)
        self.store.delete_pool(pair.id)

        logger.info(f"[Pairs] Removed trading pair: {pair_symbol}")
        self._emit(EventType.PAIR_REMOVED, pair_symbol, {"pairId": pair.id})
        return pair

    # ─── Helpers ─────────────────────────────────────────────────────────

    def _require(self, pair_symbol: str) -> TradingPair:
        pair = self.get_trading_pair(pair_symbol)
        if not pair:
            raise PairNotFoundError(pair_symbol)
        return pair

    def _emit(self, event_type: EventType, symbol: str, data: Dict[str, Any]):
        if self.event_bus:
            self.event_bus.emit(DexEvent(event_type=event_type, source="pair_registry", symbol=symbol, data=data))
