"""
Real-time event queue.

The log subscription appends signatures to an unbounded FIFO; a single
worker drains it strictly in arrival order, so no two live events are ever
processed concurrently.  State machine: ``IDLE → DRAINING → IDLE``.

Per item: fetch the transaction (gateway retry budget applies), classify,
persist, then wait ``REALTIME_ITEM_DELAY`` seconds.  A failing item is
logged and skipped; nothing is retried or replayed beyond the gateway.

On :meth:`RealtimeEventQueue.stop` the in-flight item is cancelled and any
items still queued are discarded and counted.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from config import REALTIME_ITEM_DELAY, TOKEN_DECIMALS
from .data_sources.solana_rpc import SolanaRpcClient
from .logging_config import stage_ctx
from .store import TransferStore
from .transfer_ingest import ingest_transaction
from .wallet_registry import WalletRegistry

logger = logging.getLogger(__name__)


class QueueState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"


@dataclass
class QueueStats:
    enqueued: int = 0
    processed: int = 0
    failed: int = 0
    events_written: int = 0
    discarded: int = 0


class RealtimeEventQueue:
    """Single-consumer FIFO of transaction signatures."""

    def __init__(
        self,
        *,
        mint: str,
        rpc: SolanaRpcClient,
        store: TransferStore,
        registry: WalletRegistry,
        decimals: int = TOKEN_DECIMALS,
        item_delay: float = REALTIME_ITEM_DELAY,
    ) -> None:
        self._mint = mint
        self._rpc = rpc
        self._store = store
        self._registry = registry
        self._decimals = decimals
        self._item_delay = item_delay
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._state = QueueState.IDLE
        self.stats = QueueStats()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> QueueState:
        return self._state

    def __len__(self) -> int:
        return self._queue.qsize()

    async def enqueue(self, signature: str) -> None:
        """Subscription callback: append *signature* to the FIFO."""
        self._queue.put_nowait(signature)
        self.stats.enqueued += 1

    def start(self) -> None:
        if self._worker is not None and not self._worker.done():
            return
        self._worker = asyncio.create_task(self._run(), name="realtime_queue")

    async def join(self) -> None:
        """Wait until every enqueued item has been processed."""
        await self._queue.join()

    async def stop(self) -> int:
        """Cancel the worker and discard pending items. Returns the count."""
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
        self._worker = None

        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self._queue.task_done()
            discarded += 1
        self.stats.discarded += discarded
        self._state = QueueState.IDLE
        if discarded:
            logger.warning("Real-time queue stopped – discarded %d pending events", discarded)
        return discarded

    def status(self) -> dict:
        return {
            "state": self._state.value,
            "pending": self._queue.qsize(),
            "enqueued": self.stats.enqueued,
            "processed": self.stats.processed,
            "failed": self.stats.failed,
            "events_written": self.stats.events_written,
            "discarded": self.stats.discarded,
        }

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        stage_ctx.set("realtime")
        logger.info("Real-time queue worker started")
        while True:
            signature = await self._queue.get()
            self._state = QueueState.DRAINING
            try:
                await self._process(signature)
                await asyncio.sleep(self._item_delay)
            finally:
                self._queue.task_done()
                if self._queue.empty():
                    self._state = QueueState.IDLE

    async def _process(self, signature: str) -> None:
        try:
            tx = await self._rpc.get_parsed_transaction(signature)
            if tx is None:
                logger.debug("Transaction %s not found", signature[:12])
            else:
                events = await ingest_transaction(
                    signature, tx,
                    monitored=self._registry.current,
                    rpc=self._rpc, store=self._store,
                    mint=self._mint, decimals=self._decimals,
                )
                self.stats.events_written += len(events)
            self.stats.processed += 1
        except Exception as exc:
            self.stats.failed += 1
            logger.error("Error in real-time transaction %s: %s", signature[:12], exc)
