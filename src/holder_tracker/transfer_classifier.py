"""
Buy / sell classification of SPL token transfers.

Direction rule (sender priority)
--------------------------------
* sender in the monitored set   → ``sell``, attributed to the sender
* else receiver in the set      → ``buy``, attributed to the receiver
* else                          → no classification (dropped)

A transfer between two monitored wallets is therefore always a ``sell`` of
the sender; there is no separate "internal transfer" category.

Owner resolution is best-effort: if the owner of either side cannot be
resolved, the instruction's ``authority`` is presumed to be the sender and
the receiver is left unknown.  This is a degraded heuristic, not a retry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Container, Mapping, Optional

from .constants import SPL_TOKEN_PROGRAM_NAME, TRANSFER_TYPES
from .data_sources.solana_rpc import SolanaRpcClient
from .models import TransferClassification, TransferInstruction

logger = logging.getLogger(__name__)


# ── Instruction extraction ────────────────────────────────────────────────

def _account_mints(tx: Mapping[str, Any]) -> dict[str, str]:
    """Map token-account address → mint using the tx's token balance lists."""
    message = (tx.get("transaction") or {}).get("message") or {}
    keys = [
        k.get("pubkey") if isinstance(k, dict) else k
        for k in message.get("accountKeys") or []
    ]
    meta = tx.get("meta") or {}
    mints: dict[str, str] = {}
    for entry in (meta.get("preTokenBalances") or []) + (meta.get("postTokenBalances") or []):
        idx = entry.get("accountIndex")
        mint = entry.get("mint")
        if isinstance(idx, int) and 0 <= idx < len(keys) and mint:
            mints[keys[idx]] = mint
    return mints


def _to_transfer(
    position: str,
    ix: Mapping[str, Any],
    *,
    mint: str,
    decimals: int,
    account_mints: Mapping[str, str],
) -> Optional[TransferInstruction]:
    if ix.get("program") != SPL_TOKEN_PROGRAM_NAME:
        return None
    parsed = ix.get("parsed")
    if not isinstance(parsed, dict) or parsed.get("type") not in TRANSFER_TYPES:
        return None
    info = parsed.get("info") or {}
    source = info.get("source")
    destination = info.get("destination")
    if not source or not destination:
        return None

    if parsed["type"] == "transferChecked":
        if mint and info.get("mint") != mint:
            return None
        raw_amount = (info.get("tokenAmount") or {}).get("amount")
        ix_mint = info.get("mint", "")
    else:
        # Plain transfers carry no mint; rely on the tx's token balances
        known = {account_mints.get(source), account_mints.get(destination)} - {None}
        if mint and known and mint not in known:
            return None
        raw_amount = info.get("amount")
        ix_mint = mint

    try:
        amount = int(raw_amount) / (10 ** decimals)
    except (TypeError, ValueError):
        return None

    return TransferInstruction(
        position=position,
        source=source,
        destination=destination,
        authority=info.get("authority") or info.get("multisigAuthority") or "",
        amount=amount,
        mint=ix_mint,
    )


def extract_transfers(
    tx: Optional[Mapping[str, Any]],
    *,
    mint: str,
    decimals: int = 6,
) -> list[TransferInstruction]:
    """Every transfer-shaped instruction of *tx*, top-level then inner.

    Positions are ``"i"`` for top-level instruction *i* and ``"i.j"`` for
    the *j*-th inner instruction under top-level instruction *i*.
    """
    if not tx:
        return []
    account_mints = _account_mints(tx)
    message = (tx.get("transaction") or {}).get("message") or {}
    transfers: list[TransferInstruction] = []

    for i, ix in enumerate(message.get("instructions") or []):
        t = _to_transfer(str(i), ix, mint=mint, decimals=decimals, account_mints=account_mints)
        if t is not None:
            transfers.append(t)

    for group in (tx.get("meta") or {}).get("innerInstructions") or []:
        parent = group.get("index", "?")
        for j, ix in enumerate(group.get("instructions") or []):
            t = _to_transfer(
                f"{parent}.{j}", ix, mint=mint, decimals=decimals, account_mints=account_mints,
            )
            if t is not None:
                transfers.append(t)
    return transfers


# ── Classification ────────────────────────────────────────────────────────

def decide_direction(
    sender: Optional[str],
    receiver: Optional[str],
    monitored: Container[str],
) -> Optional[TransferClassification]:
    """Apply the sender-priority rule. ``None`` means unclassifiable."""
    if sender and sender in monitored:
        return TransferClassification(direction="sell", wallet=sender)
    if receiver and receiver in monitored:
        return TransferClassification(direction="buy", wallet=receiver)
    return None


async def resolve_parties(
    ix: TransferInstruction, rpc: SolanaRpcClient
) -> tuple[Optional[str], Optional[str]]:
    """Resolve ``(sender, receiver)`` wallets, falling back to the authority."""
    src, dst = await asyncio.gather(
        rpc.get_account_owner(ix.source),
        rpc.get_account_owner(ix.destination),
        return_exceptions=True,
    )
    if isinstance(src, BaseException) or isinstance(dst, BaseException):
        failure = src if isinstance(src, BaseException) else dst
        logger.warning(
            "Owner lookup failed for ix %s (%s) – using authority %s as sender",
            ix.position, failure, ix.authority[:8] or "<none>",
        )
        return (ix.authority or None, None)
    return (src, dst)


async def classify_transfer(
    ix: TransferInstruction,
    monitored: Container[str],
    rpc: SolanaRpcClient,
) -> Optional[TransferClassification]:
    sender, receiver = await resolve_parties(ix, rpc)
    return decide_direction(sender, receiver, monitored)
