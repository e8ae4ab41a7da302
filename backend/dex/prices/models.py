"""Tracked-token records kept by the price tracker."""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from ..models import utc_now_iso


class AlertType(str, Enum):
    PRICE_ABOVE = "price_above"
    PRICE_BELOW = "price_below"
    CHANGE_ABOVE = "change_above"
    CHANGE_BELOW = "change_below"


@dataclass
class PriceAlert:
    id: str
    type: AlertType
    value: float
    triggered: bool = False
    triggered_at: Optional[str] = None
    trigger_count: int = 0
    created_at: str = field(default_factory=utc_now_iso)

    def condition_met(self, current: float, previous: Optional[float]) -> bool:
        """Change alerts compare against the previous sample and need one."""
        if self.type == AlertType.PRICE_ABOVE:
            return current > self.value
        if self.type == AlertType.PRICE_BELOW:
            return current < self.value
        if not previous:
            return False
        change_pct = (current - previous) / previous * 100
        if self.type == AlertType.CHANGE_ABOVE:
            return change_pct > self.value
        return change_pct < self.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "value": self.value,
            "triggered": self.triggered,
            "triggeredAt": self.triggered_at,
            "triggerCount": self.trigger_count,
            "createdAt": self.created_at,
        }


@dataclass
class PricePoint:
    price: float
    market_cap: Optional[float]
    volume_24h: Optional[float]
    change_24h: Optional[float]
    timestamp: str
    source: str = "coingecko"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": self.price,
            "marketCap": self.market_cap,
            "volume24h": self.volume_24h,
            "change24h": self.change_24h,
            "timestamp": self.timestamp,
            "source": self.source,
        }


@dataclass
class PriceQuote:
    symbol: str
    price: float
    change_24h: Optional[float]
    market_cap: Optional[float]
    volume_24h: Optional[float]
    last_update: str
    source: str = "coingecko"

    @property
    def is_mock(self) -> bool:
        return self.source == "mock"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change24h": self.change_24h,
            "marketCap": self.market_cap,
            "volume24h": self.volume_24h,
            "lastUpdate": self.last_update,
            "source": self.source,
        }


@dataclass
class TrackedToken:
    tracking_id: str
    coingecko_id: str
    symbol: str
    original_symbol: str
    history_limit: int = 100
    enabled: bool = True
    last_price: Optional[float] = None
    last_update: Optional[str] = None
    alerts: List[PriceAlert] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=utc_now_iso)
    price_history: Deque[PricePoint] = field(init=False)

    def __post_init__(self):
        self.price_history = deque(maxlen=self.history_limit)

    def find_alert(self, alert_id: str) -> Optional[PriceAlert]:
        for alert in self.alerts:
            if alert.id == alert_id:
                return alert
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trackingId": self.tracking_id,
            "coinGeckoId": self.coingecko_id,
            "rTokenSymbol": self.symbol,
            "originalSymbol": self.original_symbol,
            "enabled": self.enabled,
            "lastPrice": self.last_price,
            "lastUpdate": self.last_update,
            "historySize": len(self.price_history),
            "alerts": [a.to_dict() for a in self.alerts],
            "metadata": dict(self.metadata),
            "createdAt": self.created_at,
        }
