"""
Singleton client management for the Holder Tracker.

Provides the lazily-initialised Solana RPC client, the persistence store and
the shared wallet registry.  ``init_clients`` / ``close_clients`` should be
called at app startup/shutdown.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..data_sources.solana_rpc import SolanaRpcClient
from ..store import TransferStore
from ..wallet_registry import WalletRegistry
from config import (
    DB_PATH,
    REQUEST_TIMEOUT,
    RPC_BACKOFF_SECONDS,
    RPC_MAX_ATTEMPTS,
    SOLANA_RPC_ENDPOINT,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singletons (created once, reused)
# ---------------------------------------------------------------------------
_rpc_client: Optional[SolanaRpcClient] = None
_store: Optional[TransferStore] = None
_registry: Optional[WalletRegistry] = None


def get_rpc_client() -> SolanaRpcClient:
    global _rpc_client
    if _rpc_client is None:
        _rpc_client = SolanaRpcClient(
            endpoint=SOLANA_RPC_ENDPOINT,
            timeout=REQUEST_TIMEOUT,
            max_attempts=RPC_MAX_ATTEMPTS,
            backoff=RPC_BACKOFF_SECONDS,
        )
    return _rpc_client


def get_store() -> TransferStore:
    global _store
    if _store is None:
        _store = TransferStore(db_path=DB_PATH)
    return _store


def get_registry() -> WalletRegistry:
    global _registry
    if _registry is None:
        _registry = WalletRegistry()
    return _registry


async def init_clients() -> None:
    """Eagerly create the singletons (called at startup)."""
    get_rpc_client()
    get_store()
    get_registry()


async def close_clients() -> None:
    """Close the RPC client and the store connection (called at shutdown)."""
    global _rpc_client, _store
    if _rpc_client is not None:
        await _rpc_client.close()
        _rpc_client = None
    if _store is not None:
        await _store.close()
        _store = None
