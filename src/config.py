"""
Project configuration file for the Holder Tracker.

This module centralises all user-modifiable settings such as the RPC
endpoints, the tracked token mint, pacing delays and server options.  You can
edit these values directly or set environment variables to override them.
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _parse_float(name: str, default: str, *, low: float = 0.0, high: float = 1.0) -> float:
    """Parse an env var as a float and validate it within [low, high]."""
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = float(default)
    if not (low <= value <= high):
        logger.warning("%s=%.4f is outside [%.1f, %.1f] – clamped", name, value, low, high)
        value = max(low, min(value, high))
    return value


def _parse_int(name: str, default: str, *, minimum: int = 1) -> int:
    """Parse an env var as an int and enforce a minimum."""
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = int(default)
    if value < minimum:
        logger.warning("%s=%d is below minimum %d – clamped", name, value, minimum)
        value = minimum
    return value


def _ws_from_http(url: str) -> str:
    """Derive the pubsub websocket URL from an HTTP(S) RPC URL."""
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):]
    if url.startswith("http://"):
        return "ws://" + url[len("http://"):]
    return url


# ---------------------------------------------------------------------------
# Solana RPC
# ---------------------------------------------------------------------------
SOLANA_RPC_ENDPOINT: str = os.getenv(
    "SOLANA_RPC_ENDPOINT",
    "https://api.mainnet-beta.solana.com",
)
SOLANA_WS_ENDPOINT: str = os.getenv(
    "SOLANA_WS_ENDPOINT",
    _ws_from_http(SOLANA_RPC_ENDPOINT),
)

# ---------------------------------------------------------------------------
# Tracked token
# ---------------------------------------------------------------------------
TOKEN_MINT: str = os.getenv("TOKEN_MINT", "")
TOKEN_DECIMALS: int = _parse_int("TOKEN_DECIMALS", "6", minimum=0)
TOP_HOLDER_LIMIT: int = _parse_int("TOP_HOLDER_LIMIT", "60", minimum=1)

# ---------------------------------------------------------------------------
# RPC retry policy (rate-limit only, linear backoff)
# ---------------------------------------------------------------------------
RPC_MAX_ATTEMPTS: int = _parse_int("RPC_MAX_ATTEMPTS", "5", minimum=1)
RPC_BACKOFF_SECONDS: float = _parse_float("RPC_BACKOFF_SECONDS", "1.5", low=0.0, high=60.0)
REQUEST_TIMEOUT: int = _parse_int("REQUEST_TIMEOUT", "15", minimum=1)

# ---------------------------------------------------------------------------
# Pacing  (seconds; tuned to stay under public RPC rate limits)
# ---------------------------------------------------------------------------
SNAPSHOT_BATCH_SIZE: int = _parse_int("SNAPSHOT_BATCH_SIZE", "3", minimum=1)
SNAPSHOT_ITEM_DELAY: float = _parse_float("SNAPSHOT_ITEM_DELAY", "0.2", low=0.0, high=60.0)
SNAPSHOT_BATCH_PAUSE: float = _parse_float("SNAPSHOT_BATCH_PAUSE", "0.8", low=0.0, high=60.0)
SNAPSHOT_REFRESH_SECONDS: int = _parse_int("SNAPSHOT_REFRESH_SECONDS", "3600", minimum=60)

BACKFILL_SIGNATURE_LIMIT: int = _parse_int("BACKFILL_SIGNATURE_LIMIT", "100", minimum=1)
BACKFILL_BATCH_SIZE: int = _parse_int("BACKFILL_BATCH_SIZE", "4", minimum=1)
BACKFILL_ITEM_DELAY: float = _parse_float("BACKFILL_ITEM_DELAY", "0.2", low=0.0, high=60.0)
BACKFILL_BATCH_PAUSE: float = _parse_float("BACKFILL_BATCH_PAUSE", "0.5", low=0.0, high=60.0)

REALTIME_ITEM_DELAY: float = _parse_float("REALTIME_ITEM_DELAY", "1.0", low=0.0, high=60.0)

# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------
DB_PATH: str = os.getenv("DB_PATH", "data/holders.db")

# ---------------------------------------------------------------------------
# Sentry (error tracking)
# ---------------------------------------------------------------------------
SENTRY_DSN: str = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT: str = os.getenv("SENTRY_ENVIRONMENT", "production")
SENTRY_TRACES_SAMPLE_RATE: float = _parse_float(
    "SENTRY_TRACES_SAMPLE_RATE", "0.1", low=0.0, high=1.0
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# ---------------------------------------------------------------------------
# API server
# ---------------------------------------------------------------------------
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = _parse_int("API_PORT", "5000", minimum=1)
RATE_LIMIT_REFRESH: str = os.getenv("RATE_LIMIT_REFRESH", "2/minute")
CORS_ORIGINS: list[str] = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]
