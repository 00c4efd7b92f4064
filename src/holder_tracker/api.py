"""
REST API for the Holder Tracker using FastAPI.

Endpoints
---------
GET  /health                   - Health check + pipeline status
GET  /api/top-wallets          - Latest stored top-holder snapshot
POST /api/top-wallets/refresh  - Rebuild the snapshot now (rate-limited)
GET  /api/transactions         - Classified transfers, filtered + paginated

The ingestion pipeline (snapshot → backfill → live queue) is started in the
lifespan when ``TOKEN_MINT`` is configured.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from config import (
    CORS_ORIGINS,
    RATE_LIMIT_REFRESH,
    SENTRY_DSN,
    SENTRY_ENVIRONMENT,
    SENTRY_TRACES_SAMPLE_RATE,
    SOLANA_RPC_ENDPOINT,
    TOKEN_MINT,
)
from .data_sources._clients import (
    close_clients,
    get_registry,
    get_rpc_client,
    get_store,
    init_clients,
)
from .logging_config import generate_request_id, request_id_ctx, setup_logging
from .models import TopWalletsResponse, TransactionsPage
from .tracker import HolderTracker
from .utils import parse_datetime

setup_logging()
logger = logging.getLogger(__name__)

if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
    )
    logger.info("Sentry initialised (env=%s)", SENTRY_ENVIRONMENT)
else:
    logger.info("SENTRY_DSN not set – error tracking disabled")

_start_time = time.monotonic()
_tracker: Optional[HolderTracker] = None

limiter = Limiter(key_func=get_remote_address)


def get_tracker() -> Optional[HolderTracker]:
    return _tracker


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start the ingestion pipeline on startup, stop it on shutdown."""
    global _tracker
    if not SOLANA_RPC_ENDPOINT.startswith("http"):
        raise RuntimeError("Invalid SOLANA_RPC_ENDPOINT – must be an HTTP(S) URL")

    await init_clients()
    if TOKEN_MINT:
        _tracker = HolderTracker(
            mint=TOKEN_MINT,
            rpc=get_rpc_client(),
            store=get_store(),
            registry=get_registry(),
        )
        await _tracker.start()
    else:
        logger.warning("TOKEN_MINT not set – serving stored data only")
    yield
    logger.info("Shutting down …")
    if _tracker is not None:
        await _tracker.stop()
        _tracker = None
    await close_clients()


app = FastAPI(
    title="Holder Tracker API",
    description="Top-holder concentration and buy/sell flow for a single SPL token.",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Accept"],
)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a unique request ID to every request for tracing."""

    async def dispatch(self, request: Request, call_next):
        rid = generate_request_id()
        request_id_ctx.set(rid)
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = rid
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


app.add_middleware(RequestIdMiddleware)


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@app.get("/health", tags=["system"])
async def health() -> dict:
    """Uptime plus pipeline status when the tracker is running."""
    tracker = get_tracker()
    return {
        "status": "ok",
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "tracker": tracker.status() if tracker is not None else None,
    }


@app.get("/api/top-wallets", response_model=TopWalletsResponse, tags=["holders"])
async def top_wallets() -> TopWalletsResponse:
    """Return the most recent stored snapshot, ranked."""
    store = get_store()
    try:
        holders = await store.list_holders()
        snapshot_at = await store.latest_snapshot_at()
    except Exception as exc:
        logger.exception("Error fetching top wallets")
        raise HTTPException(status_code=500, detail="Failed to fetch top wallets") from exc
    return TopWalletsResponse(snapshot_at=snapshot_at, top_wallets=holders)


@app.post("/api/top-wallets/refresh", response_model=TopWalletsResponse, tags=["holders"])
@limiter.limit(RATE_LIMIT_REFRESH)
async def refresh_top_wallets(request: Request) -> TopWalletsResponse:
    """Rebuild the snapshot from chain state and return it."""
    tracker = get_tracker()
    if tracker is None:
        raise HTTPException(status_code=503, detail="Tracker is not running")
    try:
        holders = await tracker.refresh_snapshot()
        snapshot_at = await tracker.store.latest_snapshot_at()
    except Exception as exc:
        logger.exception("Snapshot refresh failed")
        raise HTTPException(status_code=500, detail="Failed to refresh top wallets") from exc
    return TopWalletsResponse(snapshot_at=snapshot_at, top_wallets=holders)


@app.get("/api/transactions", response_model=TransactionsPage, tags=["transfers"])
async def transactions(
    wallet: Optional[str] = Query(None, description="Filter by monitored wallet"),
    type: Optional[str] = Query(None, description="'buy' or 'sell'"),
    from_: Optional[str] = Query(None, alias="from", description="ISO start time"),
    to: Optional[str] = Query(None, description="ISO end time"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
) -> TransactionsPage:
    """Classified transfers, newest first."""
    if type is not None and type not in ("buy", "sell"):
        raise HTTPException(status_code=400, detail="type must be 'buy' or 'sell'")
    start = parse_datetime(from_) if from_ else None
    end = parse_datetime(to) if to else None
    if (from_ and start is None) or (to and end is None):
        raise HTTPException(status_code=400, detail="from/to must be ISO timestamps")

    try:
        rows = await get_store().query_transfers(
            wallet=wallet, direction=type, start=start, end=end, page=page, limit=limit,
        )
    except Exception as exc:
        logger.exception("Error fetching transactions")
        raise HTTPException(status_code=500, detail="Failed to fetch transactions") from exc
    return TransactionsPage(page=page, limit=limit, transactions=rows)
