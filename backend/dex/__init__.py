"""
RSA DEX Services
════════════════
In-memory services behind the RSA DEX demo exchange:
  • Pair Registry — trading pairs, fee tiers, liquidity-pool placeholders
  • Market Making — synthetic bid/ask ladders refreshed on an interval
  • Price Tracker — CoinGecko polling, price history, threshold alerts
  • Deposits — mock per-network deposit addresses
  • Event Bus — pair lifecycle, alert and fallback notifications
"""

from .pair_registry import PairRegistry
from .prices import PriceTracker

__all__ = ["PairRegistry", "PriceTracker"]
