"""
Historical backfill of monitored-wallet transfers.

Wallets are scanned one after another to bound total RPC pressure.  For
each wallet's token account(s) the most recent ``BACKFILL_SIGNATURE_LIMIT``
signatures are fetched (newest first) and replayed in batches of 4
concurrent ``getTransaction`` calls, with a 200 ms delay before each fetch
and a 500 ms pause between batches.

Transfers older than the signature window are never backfilled; that is a
hard recency limit, not something to page around.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from config import (
    BACKFILL_BATCH_PAUSE,
    BACKFILL_BATCH_SIZE,
    BACKFILL_ITEM_DELAY,
    BACKFILL_SIGNATURE_LIMIT,
    TOKEN_DECIMALS,
)
from .data_sources.solana_rpc import SolanaRpcClient
from .logging_config import stage_ctx
from .store import TransferStore
from .transfer_ingest import ingest_transaction
from .utils import gather_paced
from .wallet_registry import WalletRegistry, WalletSet

logger = logging.getLogger(__name__)


@dataclass
class BackfillProgress:
    wallets_total: int = 0
    wallets_done: int = 0
    signatures_seen: int = 0
    fetch_failures: int = 0
    events_written: int = 0
    finished: bool = False

    def as_dict(self) -> dict:
        return {
            "wallets_total": self.wallets_total,
            "wallets_done": self.wallets_done,
            "signatures_seen": self.signatures_seen,
            "fetch_failures": self.fetch_failures,
            "events_written": self.events_written,
            "finished": self.finished,
        }


class BackfillScanner:
    """One-shot replay of recent transfers for the monitored wallets."""

    def __init__(
        self,
        *,
        mint: str,
        rpc: SolanaRpcClient,
        store: TransferStore,
        registry: WalletRegistry,
        decimals: int = TOKEN_DECIMALS,
        signature_limit: int = BACKFILL_SIGNATURE_LIMIT,
        batch_size: int = BACKFILL_BATCH_SIZE,
        item_delay: float = BACKFILL_ITEM_DELAY,
        batch_pause: float = BACKFILL_BATCH_PAUSE,
    ) -> None:
        self._mint = mint
        self._rpc = rpc
        self._store = store
        self._registry = registry
        self._decimals = decimals
        self._signature_limit = signature_limit
        self._batch_size = batch_size
        self._item_delay = item_delay
        self._batch_pause = batch_pause
        self.progress = BackfillProgress()

    async def run(self, wallets: Optional[Iterable[str]] = None) -> BackfillProgress:
        """Backfill *wallets* (default: the registry's current set)."""
        token = stage_ctx.set("backfill")
        try:
            targets = list(wallets if wallets is not None else self._registry.current)
            self.progress = BackfillProgress(wallets_total=len(targets))
            logger.info("Backfill started for %d wallets", len(targets))

            for wallet in targets:
                try:
                    await self._scan_wallet(wallet)
                except Exception as exc:
                    logger.warning("Backfill failed for wallet %s: %s", wallet, exc)
                self.progress.wallets_done += 1

            self.progress.finished = True
            logger.info(
                "All historical transactions fetched for top wallets "
                "(%d signatures, %d events, %d fetch failures)",
                self.progress.signatures_seen,
                self.progress.events_written,
                self.progress.fetch_failures,
            )
            return self.progress
        finally:
            stage_ctx.reset(token)

    async def _scan_wallet(self, wallet: str) -> None:
        token_accounts = await self._rpc.get_token_accounts_by_owner(wallet, self._mint)
        for token_account in token_accounts:
            signatures = await self._rpc.get_signatures_for_address(
                token_account, limit=self._signature_limit,
            )
            logger.info(
                "Wallet %s account %s: %d signatures",
                wallet[:8], token_account[:8], len(signatures),
            )
            await self._replay(signatures)

    async def _replay(self, signatures: list[dict]) -> None:
        sigs = [s["signature"] for s in signatures if s.get("signature")]
        self.progress.signatures_seen += len(sigs)

        for start in range(0, len(sigs), self._batch_size):
            batch = sigs[start:start + self._batch_size]
            txs = await gather_paced(
                batch, self._rpc.get_parsed_transaction,
                batch_size=len(batch), item_delay=self._item_delay,
            )
            # Classify against one wallet-set version for the whole batch
            monitored: WalletSet = self._registry.current
            for signature, tx in zip(batch, txs):
                if isinstance(tx, BaseException):
                    self.progress.fetch_failures += 1
                    logger.warning("Fetch failed for %s: %s", signature[:12], tx)
                    continue
                if tx is None:
                    continue
                try:
                    events = await ingest_transaction(
                        signature, tx,
                        monitored=monitored, rpc=self._rpc, store=self._store,
                        mint=self._mint, decimals=self._decimals,
                    )
                except Exception as exc:
                    logger.warning("Processing failed for %s: %s", signature[:12], exc)
                    continue
                self.progress.events_written += len(events)

            if self._batch_pause > 0 and start + self._batch_size < len(sigs):
                await asyncio.sleep(self._batch_pause)


async def backfill(
    wallets: Iterable[str],
    *,
    mint: str,
    rpc: SolanaRpcClient,
    store: TransferStore,
    registry: Optional[WalletRegistry] = None,
    **kwargs,
) -> BackfillProgress:
    """Convenience wrapper: run a :class:`BackfillScanner` once over *wallets*."""
    wallets = list(wallets)
    scanner = BackfillScanner(
        mint=mint, rpc=rpc, store=store,
        registry=registry or WalletRegistry(wallets),
        **kwargs,
    )
    return await scanner.run(wallets)
