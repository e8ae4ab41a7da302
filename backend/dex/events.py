"""
Event Bus for DEX service notifications.

The pair registry and the price tracker emit events (pair lifecycle
changes, price alerts, mock-price fallbacks) here; the bounded log backs
``GET /api/events``.
"""

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    PAIR_CREATED = "pair_created"
    PAIR_REMOVED = "pair_removed"
    PAIR_STATUS_CHANGED = "pair_status_changed"
    ORDER_BOOK_REFRESHED = "order_book_refreshed"
    PRICE_ALERT = "price_alert"
    PRICE_FALLBACK = "price_fallback"


@dataclass
class DexEvent:
    event_type: EventType
    source: str
    symbol: Optional[str]
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    event_id: str = field(default_factory=lambda: f"evt-{uuid.uuid4().hex[:12]}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventId": self.event_id,
            "eventType": self.event_type.value,
            "source": self.source,
            "symbol": self.symbol,
            "data": self.data,
            "timestamp": self.timestamp,
        }


class EventBus:
    """Records events in a bounded rolling log, newest last."""

    def __init__(self, history_limit: int = 500):
        self._history: Deque[Dict[str, Any]] = deque(maxlen=history_limit)

    def emit(self, event: DexEvent) -> Dict[str, Any]:
        event_dict = event.to_dict()
        self._history.append(event_dict)
        logger.info(
            f"[EventBus] {event.event_type.value} from {event.source}"
            f"{f' [{event.symbol}]' if event.symbol else ''}"
        )
        return event_dict

    def get_history(self, limit: int = 50, event_type: Optional[str] = None) -> List[Dict]:
        events = list(self._history)
        if event_type:
            events = [e for e in events if e["eventType"] == event_type]
        return events[-limit:] if limit > 0 else []
