"""
DEX Service Configuration
─────────────────────────
Centralizes all tunable parameters for the pair registry, the price
tracker and storage. ``DexConfig.from_env()`` reads overrides from the
process environment (``server.py`` loads ``.env`` first).
"""

import os
from dataclasses import dataclass, field
from typing import List


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else default


@dataclass
class PriceSyncConfig:
    api_url: str = "https://api.coingecko.com/api/v3"
    api_key: str = ""
    demo_key: bool = True
    update_interval_s: float = 300.0  # every 5 minutes
    request_timeout_s: float = 10.0
    history_limit: int = 100
    enabled: bool = True


@dataclass
class MarketMakingDefaults:
    spread: float = 0.01
    depth: int = 5
    amount: float = 1000.0
    refresh_interval_s: float = 30.0
    price_source: str = "external"
    base_price: float = 1.0
    scheduler_tick_s: float = 1.0


@dataclass
class StoreConfig:
    supabase_url: str = ""
    supabase_key: str = ""


@dataclass
class DexConfig:
    prices: PriceSyncConfig = field(default_factory=PriceSyncConfig)
    market_making: MarketMakingDefaults = field(default_factory=MarketMakingDefaults)
    store: StoreConfig = field(default_factory=StoreConfig)

    default_quote_tokens: List[str] = field(default_factory=lambda: ["rUSDT", "rETH", "rBTC"])
    event_history_limit: int = 500
    seed_demo_data: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "DexConfig":
        prices = PriceSyncConfig(
            api_url=os.environ.get("COINGECKO_API_URL", PriceSyncConfig.api_url).rstrip("/"),
            api_key=os.environ.get("COINGECKO_API_KEY", "").strip(),
            demo_key=_env_bool("COINGECKO_DEMO", True),
            update_interval_s=_env_float("PRICE_UPDATE_INTERVAL", PriceSyncConfig.update_interval_s),
            request_timeout_s=_env_float("PRICE_REQUEST_TIMEOUT", PriceSyncConfig.request_timeout_s),
            history_limit=_env_int("PRICE_HISTORY_LIMIT", PriceSyncConfig.history_limit),
            enabled=_env_bool("PRICE_SYNC_ENABLED", True),
        )
        market_making = MarketMakingDefaults(
            scheduler_tick_s=_env_float("MARKET_MAKING_TICK", MarketMakingDefaults.scheduler_tick_s),
        )
        store = StoreConfig(
            supabase_url=os.environ.get("SUPABASE_URL", ""),
            supabase_key=os.environ.get("SUPABASE_SERVICE_KEY", ""),
        )
        return cls(
            prices=prices,
            market_making=market_making,
            store=store,
            seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
