"""
Pair Store with Supabase Backend and In-Memory Fallback
───────────────────────────────────────────────────────
Persists trading pairs, the symbol → pair-id lookup and liquidity pools.
Falls back to an in-memory store if Supabase is unavailable (no keys,
invalid keys, network issues) so the app always works in demo mode.

Records are copied on the way in and out: callers mutate their own copy
and write it back with ``save_pair`` / ``save_pool``.
"""

import json
import logging
from abc import ABC, abstractmethod
from copy import deepcopy
from typing import Any, Dict, List, Optional

from .models import LiquidityPool, TradingPair

logger = logging.getLogger(__name__)


class PairStore(ABC):
    """Repository for pairs, symbol bindings and liquidity pools."""

    @property
    @abstractmethod
    def backend(self) -> str:
        pass

    @abstractmethod
    def save_pair(self, pair: TradingPair) -> None:
        pass

    @abstractmethod
    def get_pair(self, pair_id: str) -> Optional[TradingPair]:
        pass

    @abstractmethod
    def delete_pair(self, pair_id: str) -> bool:
        pass

    @abstractmethod
    def list_pairs(self) -> List[TradingPair]:
        pass

    @abstractmethod
    def bind_symbol(self, symbol: str, pair_id: str) -> None:
        """Point ``symbol`` at ``pair_id``, replacing any previous binding."""

    @abstractmethod
    def resolve_symbol(self, symbol: str) -> Optional[str]:
        pass

    @abstractmethod
    def unbind_symbol(self, symbol: str) -> bool:
        pass

    @abstractmethod
    def save_pool(self, pool: LiquidityPool) -> None:
        pass

    @abstractmethod
    def get_pool(self, pair_id: str) -> Optional[LiquidityPool]:
        pass

    @abstractmethod
    def delete_pool(self, pair_id: str) -> bool:
        pass


# ─── In-Memory Store ────────────────────────────────────────────────────────

class InMemoryPairStore(PairStore):
    def __init__(self):
        self._pairs: Dict[str, TradingPair] = {}
        self._symbols: Dict[str, str] = {}
        self._pools: Dict[str, LiquidityPool] = {}

    @property
    def backend(self) -> str:
        return "memory"

    def save_pair(self, pair: TradingPair) -> None:
        self._pairs[pair.id] = deepcopy(pair)

    def get_pair(self, pair_id: str) -> Optional[TradingPair]:
        pair = self._pairs.get(pair_id)
        return deepcopy(pair) if pair else None

    def delete_pair(self, pair_id: str) -> bool:
        return self._pairs.pop(pair_id, None) is not None

    def list_pairs(self) -> List[TradingPair]:
        return [deepcopy(p) for p in self._pairs.values()]

    def bind_symbol(self, symbol: str, pair_id: str) -> None:
        self._symbols[symbol] = pair_id

    def resolve_symbol(self, symbol: str) -> Optional[str]:
        return self._symbols.get(symbol)

    def unbind_symbol(self, symbol: str) -> bool:
        return self._symbols.pop(symbol, None) is not None

    def save_pool(self, pool: LiquidityPool) -> None:
        self._pools[pool.pair_id] = deepcopy(pool)

    def get_pool(self, pair_id: str) -> Optional[LiquidityPool]:
        pool = self._pools.get(pair_id)
        return deepcopy(pool) if pool else None

    def delete_pool(self, pair_id: str) -> bool:
        return self._pools.pop(pair_id, None) is not None


# ─── Supabase Store ─────────────────────────────────────────────────────────

class SupabasePairStore(PairStore):
    """
    Tables (payloads are the camelCase ``to_dict`` form, stored as JSON):
      • trading_pairs   (id text primary key, symbol text, data jsonb)
      • pair_symbols    (symbol text primary key, pair_id text)
      • liquidity_pools (pair_id text primary key, data jsonb)
    """

    PAIRS_TABLE = "trading_pairs"
    SYMBOLS_TABLE = "pair_symbols"
    POOLS_TABLE = "liquidity_pools"

    def __init__(self, client):
        self._client = client

    @property
    def backend(self) -> str:
        return "supabase"

    def _table(self, name: str):
        return self._client.table(name)

    def save_pair(self, pair: TradingPair) -> None:
        row = {"id": pair.id, "symbol": pair.symbol, "data": pair.to_dict()}
        self._table(self.PAIRS_TABLE).upsert(row).execute()

    def get_pair(self, pair_id: str) -> Optional[TradingPair]:
        result = self._table(self.PAIRS_TABLE).select("*").eq("id", pair_id).limit(1).execute()
        if result.data:
            return TradingPair.from_dict(self._payload(result.data[0]))
        return None

    def delete_pair(self, pair_id: str) -> bool:
        result = self._table(self.PAIRS_TABLE).delete().eq("id", pair_id).execute()
        return bool(result.data)

    def list_pairs(self) -> List[TradingPair]:
        result = self._table(self.PAIRS_TABLE).select("*").execute()
        return [TradingPair.from_dict(self._payload(row)) for row in (result.data or [])]

    def bind_symbol(self, symbol: str, pair_id: str) -> None:
        self._table(self.SYMBOLS_TABLE).upsert({"symbol": symbol, "pair_id": pair_id}).execute()

    def resolve_symbol(self, symbol: str) -> Optional[str]:
        result = self._table(self.SYMBOLS_TABLE).select("*").eq("symbol", symbol).limit(1).execute()
        if result.data:
            return result.data[0].get("pair_id")
        return None

    def unbind_symbol(self, symbol: str) -> bool:
        result = self._table(self.SYMBOLS_TABLE).delete().eq("symbol", symbol).execute()
        return bool(result.data)

    def save_pool(self, pool: LiquidityPool) -> None:
        row = {"pair_id": pool.pair_id, "data": pool.to_dict()}
        self._table(self.POOLS_TABLE).upsert(row).execute()

    def get_pool(self, pair_id: str) -> Optional[LiquidityPool]:
        result = self._table(self.POOLS_TABLE).select("*").eq("pair_id", pair_id).limit(1).execute()
        if result.data:
            return LiquidityPool.from_dict(self._payload(result.data[0]))
        return None

    def delete_pool(self, pair_id: str) -> bool:
        result = self._table(self.POOLS_TABLE).delete().eq("pair_id", pair_id).execute()
        return bool(result.data)

    @staticmethod
    def _payload(row: Dict[str, Any]) -> Dict[str, Any]:
        data = row.get("data")
        if isinstance(data, str):
            data = json.loads(data)
        return data or {}


def create_pair_store(url: str, key: str) -> PairStore:
    """Connect to Supabase, or fall back to in-memory storage."""
    if not url or not key:
        logger.warning("[Store] No Supabase credentials, using in-memory storage")
        return InMemoryPairStore()

    try:
        from supabase import create_client
        client = create_client(url, key)
        # Quick health check
        client.table(SupabasePairStore.PAIRS_TABLE).select("id").limit(1).execute()
        logger.info(f"[Store] Connected to Supabase: {url[:40]}...")
        return SupabasePairStore(client)
    except Exception as e:
        logger.warning(f"[Store] Supabase unavailable ({e}), using in-memory storage")
        return InMemoryPairStore()
