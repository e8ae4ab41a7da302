"""
rToken DEX Backend
──────────────────
Listing and pricing services for wrapped rTokens:
  • Trading pair registry with fee tiers and liquidity-pool records
  • Synthetic market making (bid/ask ladders refreshed on an interval)
  • CoinGecko price sync with per-token mock fallback and threshold alerts
  • Mock per-network deposit addresses
  • Event log of pair lifecycle changes, alerts and price fallbacks

Every endpoint answers ``{"success": true, "data": ...}`` or
``{"success": false, "error": "..."}`` with a matching HTTP status.
"""

from fastapi import FastAPI, APIRouter, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
from pathlib import Path
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any

from dex.config import DexConfig
from dex.deposits import PRIMARY_NETWORKS, generate_deposit_address
from dex.errors import DexError, PairNotFoundError
from dex.events import EventBus
from dex.market_maker import MarketMakingScheduler
from dex.pair_registry import PairRegistry
from dex.prices import PriceTracker
from dex.seed import seed_demo_state
from dex.store import create_pair_store

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api")

# ─── Pydantic Models ─────────────────────────────────────────────────────────

class MarketMakingRequest(BaseModel):
    spread: Optional[float] = None
    depth: Optional[int] = None
    amount: Optional[float] = None
    refresh_interval: Optional[float] = Field(None, description="Seconds between ladder refreshes")
    price_source: Optional[str] = None

    def options(self) -> Dict[str, Any]:
        return {
            "spread": self.spread,
            "depth": self.depth,
            "amount": self.amount,
            "refresh_interval_s": self.refresh_interval,
            "price_source": self.price_source,
        }


class CreatePairRequest(BaseModel):
    base_token: str
    quote_token: str
    min_trade_amount: Optional[float] = None
    max_trade_amount: Optional[float] = None
    price_decimals: Optional[int] = None
    amount_decimals: Optional[int] = None
    tick_size: Optional[float] = None
    step_size: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    create_liquidity_pool: bool = True
    enable_market_making: bool = False
    market_making: Optional[MarketMakingRequest] = None


class DefaultPairsRequest(BaseModel):
    base_token: str
    quote_tokens: Optional[List[str]] = None
    enable_market_making: bool = False


class StatusRequest(BaseModel):
    status: str


class StatsRequest(BaseModel):
    last_price: Optional[float] = None
    volume_24h: Optional[float] = None
    high_24h: Optional[float] = None
    low_24h: Optional[float] = None
    change_24h: Optional[float] = None
    trades_24h: Optional[int] = None


class AlertRequest(BaseModel):
    type: str
    value: float


class RegisterTokenRequest(BaseModel):
    coingecko_id: str
    symbol: str
    original_symbol: Optional[str] = None
    alerts: List[AlertRequest] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TrackingRequest(BaseModel):
    enabled: bool


class DepositAddressRequest(BaseModel):
    user_id: Optional[str] = None
    network: str = "bitcoin"
    symbol: Optional[str] = None


# ─── Helpers ─────────────────────────────────────────────────────────────────

def ok(data: Any, **extra) -> Dict[str, Any]:
    return {"success": True, "data": data, **extra}


def _registry(request: Request) -> PairRegistry:
    return request.app.state.registry


def _tracker(request: Request) -> PriceTracker:
    return request.app.state.tracker


def _symbol(base: str, quote: str) -> str:
    return f"{base}/{quote}"


# ═══════════════════════════════════════════════════════════════════════════════
#  HEALTH
# ═══════════════════════════════════════════════════════════════════════════════

@api_router.get("/")
async def root():
    return ok({
        "service": "rToken DEX",
        "endpoints": ["/api/health", "/api/pairs", "/api/prices", "/api/deposits", "/api/events"],
    })


@api_router.get("/health")
async def health(request: Request):
    registry = _registry(request)
    tracker = _tracker(request)
    return ok({
        "status": "ok",
        "storage": registry.store.backend,
        "pairs": len(registry.store.list_pairs()),
        "trackedTokens": len(tracker.list_tracked_tokens()),
        "priceSync": tracker.is_running,
        "marketMaking": request.app.state.scheduler.get_stats(),
    })


# ═══════════════════════════════════════════════════════════════════════════════
#  TRADING PAIRS
# ═══════════════════════════════════════════════════════════════════════════════

@api_router.get("/pairs")
async def list_pairs(
    request: Request,
    base_token: Optional[str] = None,
    quote_token: Optional[str] = None,
    category: Optional[str] = None,
    status: Optional[str] = None,
):
    pairs = _registry(request).list_trading_pairs(
        base_token=base_token, quote_token=quote_token, category=category, status=status,
    )
    return ok([p.to_dict() for p in pairs], count=len(pairs))


@api_router.post("/pairs", status_code=201)
async def create_pair(req: CreatePairRequest, request: Request):
    pair = _registry(request).create_trading_pair(
        req.base_token,
        req.quote_token,
        min_trade_amount=req.min_trade_amount,
        max_trade_amount=req.max_trade_amount,
        price_decimals=req.price_decimals,
        amount_decimals=req.amount_decimals,
        tick_size=req.tick_size,
        step_size=req.step_size,
        metadata=req.metadata,
        create_liquidity_pool=req.create_liquidity_pool,
        enable_market_making=req.enable_market_making,
        market_making=req.market_making.options() if req.market_making else None,
    )
    return ok(pair.to_dict())


@api_router.post("/pairs/defaults", status_code=201)
async def create_default_pairs(req: DefaultPairsRequest, request: Request):
    quotes = req.quote_tokens if req.quote_tokens is not None else request.app.state.config.default_quote_tokens
    created = _registry(request).create_default_pairs(
        req.base_token, quotes, enable_market_making=req.enable_market_making,
    )
    return ok([p.to_dict() for p in created], count=len(created), requested=len(quotes))


@api_router.get("/pairs/stats")
async def pair_stats(request: Request):
    return ok(_registry(request).get_stats())


@api_router.get("/pairs/{base}/{quote}")
async def get_pair(base: str, quote: str, request: Request):
    symbol = _symbol(base, quote)
    pair = _registry(request).get_trading_pair(symbol)
    if not pair:
        raise PairNotFoundError(symbol)
    return ok(pair.to_dict())


@api_router.delete("/pairs/{base}/{quote}")
async def delete_pair(base: str, quote: str, request: Request):
    pair = _registry(request).remove_trading_pair(_symbol(base, quote))
    return ok({"removed": pair.symbol, "pairId": pair.id})


@api_router.put("/pairs/{base}/{quote}/status")
async def update_pair_status(base: str, quote: str, req: StatusRequest, request: Request):
    pair = _registry(request).update_pair_status(_symbol(base, quote), req.status)
    return ok(pair.to_dict())


@api_router.put("/pairs/{base}/{quote}/stats")
async def update_pair_stats(base: str, quote: str, req: StatsRequest, request: Request):
    pair = _registry(request).update_pair_stats(
        _symbol(base, quote),
        last_price=req.last_price,
        volume_24h=req.volume_24h,
        high_24h=req.high_24h,
        low_24h=req.low_24h,
        change_24h=req.change_24h,
        trades_24h=req.trades_24h,
    )
    return ok(pair.to_dict())


@api_router.post("/pairs/{base}/{quote}/market-making")
async def setup_market_making(base: str, quote: str, req: MarketMakingRequest, request: Request):
    pair = _registry(request).setup_market_making(_symbol(base, quote), **req.options())
    return ok(pair.to_dict())


@api_router.get("/pairs/{base}/{quote}/orderbook")
async def get_order_book(base: str, quote: str, request: Request):
    symbol = _symbol(base, quote)
    pair = _registry(request).get_trading_pair(symbol)
    if not pair:
        raise PairNotFoundError(symbol)
    return ok({"symbol": symbol, **pair.order_book.to_dict()})


@api_router.get("/pairs/{base}/{quote}/liquidity-pool")
async def get_liquidity_pool(base: str, quote: str, request: Request):
    symbol = _symbol(base, quote)
    pool = _registry(request).get_liquidity_pool(symbol)
    if not pool:
        raise DexError(f"Liquidity pool not found: {symbol}", status_code=404)
    return ok(pool.to_dict())


# ═══════════════════════════════════════════════════════════════════════════════
#  PRICES
# ═══════════════════════════════════════════════════════════════════════════════

@api_router.get("/prices")
async def get_all_prices(request: Request):
    quotes = _tracker(request).get_all_prices()
    return ok([q.to_dict() for q in quotes], count=len(quotes))


@api_router.get("/prices/status")
async def price_sync_status(request: Request):
    return ok(_tracker(request).get_status())


@api_router.post("/prices/refresh")
async def refresh_prices(request: Request):
    updated = await _tracker(request).update_all_prices()
    return ok({"updated": updated, "count": len(updated)})


@api_router.get("/prices/tokens")
async def list_tracked_tokens(request: Request):
    tokens = _tracker(request).list_tracked_tokens()
    return ok([t.to_dict() for t in tokens], count=len(tokens))


@api_router.post("/prices/tokens", status_code=201)
async def register_token(req: RegisterTokenRequest, request: Request):
    tracker = _tracker(request)
    tracking_id = tracker.register_token(
        req.coingecko_id,
        req.symbol,
        original_symbol=req.original_symbol,
        alerts=[{"type": a.type, "value": a.value} for a in req.alerts],
        metadata=req.metadata,
    )
    return ok({"trackingId": tracking_id, "token": tracker.get_tracked_token(req.symbol.strip()).to_dict()})


@api_router.put("/prices/tokens/{symbol}/tracking")
async def set_tracking(symbol: str, req: TrackingRequest, request: Request):
    token = _tracker(request).set_tracking_enabled(symbol, req.enabled)
    return ok(token.to_dict())


@api_router.get("/prices/{symbol}")
async def get_price(symbol: str, request: Request):
    quote = _tracker(request).get_price(symbol)
    if not quote:
        raise DexError(f"No price available for {symbol}", status_code=404)
    return ok(quote.to_dict())


@api_router.get("/prices/{symbol}/history")
async def get_price_history(symbol: str, request: Request, limit: int = Query(24, ge=1, le=1000)):
    history = _tracker(request).get_price_history(symbol, limit=limit)
    return ok([p.to_dict() for p in history], count=len(history))


@api_router.post("/prices/{symbol}/alerts", status_code=201)
async def add_alert(symbol: str, req: AlertRequest, request: Request):
    alert = _tracker(request).add_alert(symbol, req.type, req.value)
    return ok(alert.to_dict())


@api_router.delete("/prices/{symbol}/alerts/{alert_id}")
async def remove_alert(symbol: str, alert_id: str, request: Request):
    alert = _tracker(request).remove_alert(symbol, alert_id)
    return ok({"removed": alert.id})


# ═══════════════════════════════════════════════════════════════════════════════
#  DEPOSITS
# ═══════════════════════════════════════════════════════════════════════════════

@api_router.post("/deposits/generate-address")
async def generate_address(req: DepositAddressRequest):
    address = generate_deposit_address(req.network, symbol=req.symbol, user_id=req.user_id)
    return ok(address.to_dict())


@api_router.get("/deposits/addresses/{user_id}")
async def user_deposit_addresses(user_id: str):
    addresses = {
        network: generate_deposit_address(network, user_id=user_id).to_dict()
        for network in PRIMARY_NETWORKS
    }
    return ok({"userId": user_id, "addresses": addresses, "totalNetworks": len(addresses)})


# ═══════════════════════════════════════════════════════════════════════════════
#  EVENTS
# ═══════════════════════════════════════════════════════════════════════════════

@api_router.get("/events")
async def get_events(request: Request, limit: int = Query(50, ge=1, le=500), event_type: Optional[str] = None):
    events = request.app.state.event_bus.get_history(limit=limit, event_type=event_type)
    return ok(events, count=len(events))


# ─── Error Handlers ──────────────────────────────────────────────────────────

async def dex_error_handler(request: Request, exc: DexError):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc.detail)})


async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=422, content={"success": False, "error": f"Invalid request: {problems}"})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"[API] Unhandled error on {request.method} {request.url.path}: {exc!r}", exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


# ─── App Factory ─────────────────────────────────────────────────────────────

def create_app(
    config: Optional[DexConfig] = None,
    registry: Optional[PairRegistry] = None,
    tracker: Optional[PriceTracker] = None,
    event_bus: Optional[EventBus] = None,
) -> FastAPI:
    config = config or DexConfig.from_env()
    event_bus = event_bus or EventBus(history_limit=config.event_history_limit)
    tracker = tracker or PriceTracker(config=config.prices, event_bus=event_bus)
    if registry is None:
        registry = PairRegistry(
            store=create_pair_store(config.store.supabase_url, config.store.supabase_key),
            event_bus=event_bus,
            market_making_defaults=config.market_making,
        )
    registry.set_price_lookup(tracker.get_pair_price)
    scheduler = MarketMakingScheduler(registry, tick_s=config.market_making.scheduler_tick_s)

    app = FastAPI(title="rToken DEX Backend")
    app.state.config = config
    app.state.event_bus = event_bus
    app.state.registry = registry
    app.state.tracker = tracker
    app.state.scheduler = scheduler

    @app.on_event("startup")
    async def startup():
        if config.seed_demo_data:
            seed_demo_state(registry, tracker)
        if config.prices.enabled:
            try:
                await tracker.initialize()
            except Exception as e:
                logger.error(f"[PriceSync] Failed to start price sync: {e}")
        await scheduler.start()
        logger.info(f"rToken DEX backend started ({registry.store.backend} storage)")

    @app.on_event("shutdown")
    async def shutdown():
        await tracker.stop()
        await scheduler.stop()

    app.add_exception_handler(DexError, dex_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(api_router)
    return app


_config = DexConfig.from_env()
logging.basicConfig(level=_config.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

app = create_app(_config)
