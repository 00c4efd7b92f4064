"""
Pipeline orchestration.

Startup order:

1. seed the wallet registry from the store (or build a first snapshot)
2. schedule the one-time historical backfill in the background
3. start the real-time queue worker and the logs subscription
4. refresh the snapshot every ``SNAPSHOT_REFRESH_SECONDS``

The snapshot refresh is not coupled to classification: in-flight work keeps
the wallet-set version it started with.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from config import SNAPSHOT_REFRESH_SECONDS, SOLANA_WS_ENDPOINT, TOKEN_DECIMALS
from .backfill_scanner import BackfillScanner
from .data_sources.solana_rpc import SolanaRpcClient
from .data_sources.solana_ws import LogsSubscription
from .holder_snapshot import build_snapshot
from .models import MonitoredWallet
from .realtime_queue import RealtimeEventQueue
from .store import TransferStore
from .wallet_registry import WalletRegistry

logger = logging.getLogger(__name__)


class HolderTracker:
    """Owns the stages of the ingestion pipeline for one mint."""

    def __init__(
        self,
        *,
        mint: str,
        rpc: SolanaRpcClient,
        store: TransferStore,
        registry: Optional[WalletRegistry] = None,
        ws_endpoint: str = SOLANA_WS_ENDPOINT,
        decimals: int = TOKEN_DECIMALS,
        refresh_seconds: int = SNAPSHOT_REFRESH_SECONDS,
    ) -> None:
        if not mint:
            raise ValueError("TOKEN_MINT is required to run the tracker")
        self.mint = mint
        self.rpc = rpc
        self.store = store
        self.registry = registry or WalletRegistry()
        self._decimals = decimals
        self._refresh_seconds = refresh_seconds

        self.queue = RealtimeEventQueue(
            mint=mint, rpc=rpc, store=store, registry=self.registry, decimals=decimals,
        )
        self.backfill = BackfillScanner(
            mint=mint, rpc=rpc, store=store, registry=self.registry, decimals=decimals,
        )
        self.subscription = LogsSubscription(
            endpoint=ws_endpoint, mint=mint, on_signature=self.queue.enqueue,
        )
        self._tasks: list[asyncio.Task] = []
        self._refresh_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    async def refresh_snapshot(self) -> list[MonitoredWallet]:
        """Rebuild the snapshot now; concurrent requests are serialised."""
        async with self._refresh_lock:
            return await build_snapshot(
                self.mint,
                rpc=self.rpc, store=self.store, registry=self.registry,
                decimals=self._decimals,
            )

    async def seed_registry(self) -> int:
        addresses = await self.store.list_holder_addresses()
        if addresses:
            self.registry.publish(addresses)
        else:
            logger.info("No stored holders – building first snapshot")
            try:
                await self.refresh_snapshot()
            except Exception:
                # The refresh loop retries; start with an empty wallet set
                logger.exception("First snapshot failed – tracking no wallets until next refresh")
        return len(self.registry.current)

    async def _refresh_loop(self) -> None:
        logger.info("Snapshot refresh task started (interval=%ds)", self._refresh_seconds)
        while True:
            try:
                await asyncio.sleep(self._refresh_seconds)
            except asyncio.CancelledError:
                break
            try:
                await self.refresh_snapshot()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Snapshot refresh failed")

    async def _run_backfill(self) -> None:
        try:
            await self.backfill.run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Historical backfill aborted")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        count = await self.seed_registry()
        logger.info("Tracking %d wallets for mint %s", count, self.mint)
        self.queue.start()
        self._tasks = [
            asyncio.create_task(self._run_backfill(), name="backfill"),
            asyncio.create_task(self.subscription.start(), name="logs_subscription"),
            asyncio.create_task(self._refresh_loop(), name="snapshot_refresh"),
        ]

    async def stop(self) -> None:
        await self.subscription.stop()
        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.queue.stop()

    async def run_forever(self) -> None:
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    def status(self) -> dict[str, Any]:
        current = self.registry.current
        return {
            "mint": self.mint,
            "wallet_set": {"version": current.version, "wallets": len(current)},
            "queue": self.queue.status(),
            "backfill": self.backfill.progress.as_dict(),
            "subscription": self.subscription.state.value,
            "rpc": self.rpc.status(),
        }
