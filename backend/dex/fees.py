"""
Fee tiers and pair classification.

Static allow-lists only: a pair is classified once, when it is created,
and never re-evaluated.
"""

from enum import Enum
from typing import Dict, List

from .errors import InvalidPairError


class FeeTier(str, Enum):
    STABLE = "stable"
    STANDARD = "standard"
    EXOTIC = "exotic"


FEE_RATES: Dict[FeeTier, float] = {
    FeeTier.STANDARD: 0.003,  # 0.3%
    FeeTier.STABLE: 0.001,    # 0.1%
    FeeTier.EXOTIC: 0.005,    # 0.5%
}

STABLECOINS = frozenset({"rUSDT", "rUSDC", "rDAI", "rBUSD"})

#: Tokens that put a pair into the standard fee tier
MAJOR_TOKENS = frozenset({"rBTC", "rETH", "rBNB", "rADA", "rSOL"})

#: Narrower list used for the display category
MAJOR_CATEGORY_TOKENS = frozenset({"rBTC", "rETH", "rBNB"})

MEME_TOKENS = frozenset({"rDOGE", "rSHIB", "rPEPE"})


def is_stablecoin_like(token_symbol: str) -> bool:
    if not isinstance(token_symbol, str):
        raise InvalidPairError(f"Token symbol must be a string, got {token_symbol!r}")
    return token_symbol in STABLECOINS


def determine_fee(base_token: str, quote_token: str) -> FeeTier:
    """Pick the fee tier for a pair.

    - stablecoin/stablecoin → stable
    - either leg a major token → standard
    - anything else → exotic
    """
    if is_stablecoin_like(base_token) and is_stablecoin_like(quote_token):
        return FeeTier.STABLE
    if base_token in MAJOR_TOKENS or quote_token in MAJOR_TOKENS:
        return FeeTier.STANDARD
    return FeeTier.EXOTIC


def fee_rate(tier: FeeTier) -> float:
    return FEE_RATES[FeeTier(tier)]


def categorize_pair(base_token: str, quote_token: str) -> str:
    if base_token in STABLECOINS and quote_token in STABLECOINS:
        return "stable"
    if base_token in MAJOR_CATEGORY_TOKENS or quote_token in MAJOR_CATEGORY_TOKENS:
        return "major"
    if base_token in MEME_TOKENS or quote_token in MEME_TOKENS:
        return "meme"
    return "altcoin"


def generate_pair_tags(base_token: str, quote_token: str) -> List[str]:
    tags = []
    if base_token.startswith("r") or quote_token.startswith("r"):
        tags.append("rsa-chain")

    tags.append(categorize_pair(base_token, quote_token))

    legs = (base_token, quote_token)
    if any("SHIB" in t for t in legs):
        tags.extend(["meme", "dog-token"])
    if any("BTC" in t for t in legs):
        tags.extend(["bitcoin", "store-of-value"])
    if any("ETH" in t for t in legs):
        tags.extend(["ethereum", "smart-contracts"])
    return tags
