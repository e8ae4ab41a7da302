"""
Demo data: the rTokens tracked and the pairs listed on a fresh start.
"""

import logging
from typing import Dict, List

from .pair_registry import PairRegistry
from .prices import PriceTracker

logger = logging.getLogger(__name__)

#: (CoinGecko id, rToken symbol)
DEFAULT_TRACKED_TOKENS = [
    ("bitcoin", "rBTC"),
    ("ethereum", "rETH"),
    ("tether", "rUSDT"),
    ("usd-coin", "rUSDC"),
    ("solana", "rSOL"),
    ("binancecoin", "rBNB"),
    ("shiba-inu", "rSHIB"),
    ("dogecoin", "rDOGE"),
    ("rsa-chain", "rRSA"),
]

DEFAULT_LISTINGS: Dict[str, List[str]] = {
    "rBTC": ["rUSDT", "rUSDC"],
    "rETH": ["rUSDT", "rBTC"],
    "rSOL": ["rUSDT"],
    "rSHIB": ["rUSDT", "rETH", "rBTC"],
    "rDOGE": ["rUSDT"],
    "rRSA": ["rUSDT"],
    "rUSDC": ["rUSDT"],
}


def seed_demo_state(registry: PairRegistry, tracker: PriceTracker) -> Dict[str, int]:
    """Register the demo tokens and pairs that are not there yet."""
    tokens = 0
    for cg_id, symbol in DEFAULT_TRACKED_TOKENS:
        if tracker.get_tracked_token(symbol) is None:
            tracker.register_token(cg_id, symbol)
            tokens += 1

    pairs = 0
    for base, quotes in DEFAULT_LISTINGS.items():
        missing = [q for q in quotes if registry.get_trading_pair(f"{base}/{q}") is None]
        if not missing:
            continue
        created = registry.create_default_pairs(base, missing, enable_market_making=True)
        pairs += len(created)

    logger.info(f"[Seed] Demo state ready: {tokens} tokens tracked, {pairs} pairs created")
    return {"tokens": tokens, "pairs": pairs}
