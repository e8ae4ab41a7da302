"""CoinGecko-backed price tracking for rTokens."""

from .coingecko import CoinGeckoClient, get_mock_price_data
from .models import AlertType, PriceAlert, PricePoint, PriceQuote, TrackedToken
from .tracker import PriceTracker

__all__ = [
    "CoinGeckoClient",
    "get_mock_price_data",
    "AlertType",
    "PriceAlert",
    "PricePoint",
    "PriceQuote",
    "TrackedToken",
    "PriceTracker",
]
