"""
Trading Pair Data Model
───────────────────────
Dataclasses for trading pairs, their synthetic order ladder and the
per-pair liquidity-pool placeholder. ``to_dict`` produces the camelCase
wire format the RSA DEX frontends consume; ``from_dict`` reverses it so
stores can persist records as JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .fees import FeeTier


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PairStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    DELISTED = "delisted"


@dataclass
class OrderLevel:
    price: float
    amount: float
    total: float
    type: str = "market_maker"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": self.price,
            "amount": self.amount,
            "total": self.total,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderLevel":
        return cls(
            price=data["price"],
            amount=data["amount"],
            total=data["total"],
            type=data.get("type", "market_maker"),
        )


@dataclass
class OrderBook:
    bids: List[OrderLevel] = field(default_factory=list)
    asks: List[OrderLevel] = field(default_factory=list)
    last_update: str = field(default_factory=utc_now_iso)

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0].price if self.asks else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bids": [b.to_dict() for b in self.bids],
            "asks": [a.to_dict() for a in self.asks],
            "lastUpdate": self.last_update,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderBook":
        return cls(
            bids=[OrderLevel.from_dict(b) for b in data.get("bids", [])],
            asks=[OrderLevel.from_dict(a) for a in data.get("asks", [])],
            last_update=data.get("lastUpdate") or utc_now_iso(),
        )


@dataclass
class MarketMakingConfig:
    enabled: bool = True
    spread: float = 0.01
    depth: int = 5
    amount: float = 1000.0
    refresh_interval_s: float = 30.0
    price_source: str = "external"  # 'external' or 'internal'
    last_refresh: Optional[float] = None
    reference_price: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "spread": self.spread,
            "depth": self.depth,
            "amount": self.amount,
            "refreshInterval": self.refresh_interval_s,
            "priceSource": self.price_source,
            "lastRefresh": self.last_refresh,
            "referencePrice": self.reference_price,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketMakingConfig":
        return cls(
            enabled=data.get("enabled", True),
            spread=data.get("spread", 0.01),
            depth=data.get("depth", 5),
            amount=data.get("amount", 1000.0),
            refresh_interval_s=data.get("refreshInterval", 30.0),
            price_source=data.get("priceSource", "external"),
            last_refresh=data.get("lastRefresh"),
            reference_price=data.get("referencePrice"),
        )


@dataclass
class TradingPair:
    id: str
    symbol: str
    base_token: str
    quote_token: str
    fee_tier: FeeTier
    fee_rate: float
    status: PairStatus = PairStatus.ACTIVE

    min_trade_amount: float = 0.000001
    max_trade_amount: float = 1_000_000
    price_decimals: int = 8
    amount_decimals: int = 6
    tick_size: float = 0.00000001
    step_size: float = 0.000001

    created_at: str = field(default_factory=utc_now_iso)
    last_update: Optional[str] = None

    last_price: Optional[float] = None
    volume_24h: float = 0.0
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    change_24h: float = 0.0
    trades_24h: int = 0

    order_book: OrderBook = field(default_factory=OrderBook)
    metadata: Dict[str, Any] = field(default_factory=dict)
    market_making: Optional[MarketMakingConfig] = None

    @property
    def category(self) -> Optional[str]:
        return self.metadata.get("category")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "baseToken": self.base_token,
            "quoteToken": self.quote_token,
            "status": self.status.value,
            "feeTier": self.fee_tier.value,
            "feeRate": self.fee_rate,
            "minTradeAmount": self.min_trade_amount,
            "maxTradeAmount": self.max_trade_amount,
            "priceDecimals": self.price_decimals,
            "amountDecimals": self.amount_decimals,
            "tickSize": self.tick_size,
            "stepSize": self.step_size,
            "createdAt": self.created_at,
            "lastUpdate": self.last_update,
            "lastPrice": self.last_price,
            "volume24h": self.volume_24h,
            "high24h": self.high_24h,
            "low24h": self.low_24h,
            "change24h": self.change_24h,
            "trades24h": self.trades_24h,
            "orderBook": self.order_book.to_dict(),
            "metadata": dict(self.metadata),
            "marketMaking": self.market_making.to_dict() if self.market_making else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradingPair":
        mm = data.get("marketMaking")
        return cls(
            id=data["id"],
            symbol=data["symbol"],
            base_token=data["baseToken"],
            quote_token=data["quoteToken"],
            fee_tier=FeeTier(data["feeTier"]),
            fee_rate=data["feeRate"],
            status=PairStatus(data.get("status", "active")),
            min_trade_amount=data.get("minTradeAmount", 0.000001),
            max_trade_amount=data.get("maxTradeAmount", 1_000_000),
            price_decimals=data.get("priceDecimals", 8),
            amount_decimals=data.get("amountDecimals", 6),
            tick_size=data.get("tickSize", 0.00000001),
            step_size=data.get("stepSize", 0.000001),
            created_at=data.get("createdAt") or utc_now_iso(),
            last_update=data.get("lastUpdate"),
            last_price=data.get("lastPrice"),
            volume_24h=data.get("volume24h", 0.0),
            high_24h=data.get("high24h"),
            low_24h=data.get("low24h"),
            change_24h=data.get("change24h", 0.0),
            trades_24h=data.get("trades24h", 0),
            order_book=OrderBook.from_dict(data.get("orderBook") or {}),
            metadata=dict(data.get("metadata") or {}),
            market_making=MarketMakingConfig.from_dict(mm) if mm else None,
        )


@dataclass
class LiquidityPool:
    """Reserve / LP bookkeeping for a pair. Created zeroed, never adjusted."""

    pair_id: str
    symbol: str
    base_token: str
    quote_token: str
    fee_rate: float
    total_liquidity: float = 0.0
    base_reserve: float = 0.0
    quote_reserve: float = 0.0
    lp_token_supply: float = 0.0
    providers: List[str] = field(default_factory=list)
    volume_24h: float = 0.0
    fees_24h: float = 0.0
    apr: float = 0.0
    created_at: str = field(default_factory=utc_now_iso)
    last_update: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pairId": self.pair_id,
            "symbol": self.symbol,
            "baseToken": self.base_token,
            "quoteToken": self.quote_token,
            "totalLiquidity": self.total_liquidity,
            "baseReserve": self.base_reserve,
            "quoteReserve": self.quote_reserve,
            "lpTokenSupply": self.lp_token_supply,
            "feeRate": self.fee_rate,
            "providers": list(self.providers),
            "volume24h": self.volume_24h,
            "fees24h": self.fees_24h,
            "apr": self.apr,
            "createdAt": self.created_at,
            "lastUpdate": self.last_update,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LiquidityPool":
        return cls(
            pair_id=data["pairId"],
            symbol=data["symbol"],
            base_token=data["baseToken"],
            quote_token=data["quoteToken"],
            fee_rate=data["feeRate"],
            total_liquidity=data.get("totalLiquidity", 0.0),
            base_reserve=data.get("baseReserve", 0.0),
            quote_reserve=data.get("quoteReserve", 0.0),
            lp_token_supply=data.get("lpTokenSupply", 0.0),
            providers=list(data.get("providers") or []),
            volume_24h=data.get("volume24h", 0.0),
            fees_24h=data.get("fees24h", 0.0),
            apr=data.get("apr", 0.0),
            created_at=data.get("createdAt") or utc_now_iso(),
            last_update=data.get("lastUpdate") or utc_now_iso(),
        )
