"""
Top-holder snapshot builder.

Steps
-----
1. ``getProgramAccounts`` for the mint (165-byte accounts, mint prefix).
2. Decode balances, drop zero balances, sort descending, keep the top N.
3. Total = sum of those N balances.  This is *not* circulating supply;
   shares are relative to the tracked set only, so they sum to 100 %.
4. Resolve each account's owning wallet in paced batches (3 at a time,
   200 ms per item, 800 ms between batches).  A failed resolution drops that
   account from the snapshot; the batch carries on.
5. Upsert every resolved holder and publish the new wallet set.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from config import (
    SNAPSHOT_BATCH_PAUSE,
    SNAPSHOT_BATCH_SIZE,
    SNAPSHOT_ITEM_DELAY,
    TOKEN_DECIMALS,
    TOP_HOLDER_LIMIT,
)
from .data_sources.solana_rpc import SolanaRpcClient
from .logging_config import stage_ctx
from .models import MonitoredWallet, RawTokenAccount
from .store import TransferStore
from .utils import gather_paced
from .wallet_registry import WalletRegistry

logger = logging.getLogger(__name__)


def rank_accounts(
    accounts: list[RawTokenAccount], *, limit: int = TOP_HOLDER_LIMIT
) -> list[RawTokenAccount]:
    """Non-zero balances, largest first, capped at *limit*."""
    funded = [a for a in accounts if a.amount > 0]
    funded.sort(key=lambda a: a.amount, reverse=True)
    return funded[:limit]


def share_pct(amount: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return round(amount / total * 100, 2)


async def build_snapshot(
    mint: str,
    *,
    rpc: SolanaRpcClient,
    store: Optional[TransferStore] = None,
    registry: Optional[WalletRegistry] = None,
    limit: int = TOP_HOLDER_LIMIT,
    decimals: int = TOKEN_DECIMALS,
    batch_size: int = SNAPSHOT_BATCH_SIZE,
    item_delay: float = SNAPSHOT_ITEM_DELAY,
    batch_pause: float = SNAPSHOT_BATCH_PAUSE,
) -> list[MonitoredWallet]:
    """Rebuild the top-holder snapshot for *mint* and publish it."""
    token = stage_ctx.set("snapshot")
    try:
        accounts = await rpc.list_token_accounts(mint, decimals=decimals)
        top = rank_accounts(accounts, limit=limit)
        total = sum(a.amount for a in top)
        logger.info(
            "Snapshot: %d token accounts, %d ranked, tracked total %.6f",
            len(accounts), len(top), total,
        )

        async def _resolve(account: RawTokenAccount) -> RawTokenAccount:
            owner = await rpc.get_account_owner(account.address)
            return account.model_copy(update={"owner": owner})

        results = await gather_paced(
            top, _resolve,
            batch_size=batch_size, item_delay=item_delay, batch_pause=batch_pause,
        )

        # One wallet may own several top accounts: merge them so the
        # wallet address stays unique within a snapshot.
        by_owner: dict[str, tuple[float, str]] = {}
        for account, result in zip(top, results):
            if isinstance(result, BaseException):
                logger.warning("Error processing account %s: %s", account.address, result)
                continue
            balance, first_account = by_owner.get(result.owner, (0.0, account.address))
            by_owner[result.owner] = (balance + account.amount, first_account)

        ranked = sorted(by_owner.items(), key=lambda kv: kv[1][0], reverse=True)
        wallets = [
            MonitoredWallet(
                address=owner,
                balance=balance,
                share_pct=share_pct(balance, total),
                rank=rank,
                token_account=token_account,
            )
            for rank, (owner, (balance, token_account)) in enumerate(ranked, 1)
        ]

        if store is not None:
            snapshot_at = datetime.now(tz=timezone.utc)
            for wallet in wallets:
                try:
                    await store.upsert_holder(wallet, snapshot_at=snapshot_at)
                except Exception as exc:
                    logger.warning("Error persisting holder %s: %s", wallet.address, exc)
        if registry is not None:
            registry.publish(w.address for w in wallets)

        logger.info("Snapshot complete: %d holders", len(wallets))
        return wallets
    finally:
        stage_ctx.reset(token)
