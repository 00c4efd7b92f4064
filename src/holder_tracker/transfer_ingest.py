"""
Shared classification path for historical and live transactions.

Both the backfill scanner and the real-time queue hand a fetched transaction
to :func:`ingest_transaction`, which attributes the protocol once, classifies
every transfer-shaped instruction and persists the resulting events through
the idempotent insert.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Container, Mapping, Optional

from .data_sources.solana_rpc import SolanaRpcClient
from .models import TransferEvent
from .protocol_classifier import identify_protocol
from .store import TransferStore
from .transfer_classifier import classify_transfer, extract_transfers
from .utils import parse_datetime

logger = logging.getLogger(__name__)


def _tx_timestamp(tx: Mapping[str, Any]) -> datetime:
    return parse_datetime(tx.get("blockTime")) or datetime.now(tz=timezone.utc)


async def ingest_transaction(
    signature: str,
    tx: Optional[Mapping[str, Any]],
    *,
    monitored: Container[str],
    rpc: SolanaRpcClient,
    store: TransferStore,
    mint: str,
    decimals: int = 6,
) -> list[TransferEvent]:
    """Classify and persist the transfers in *tx*.

    Returns the events that were newly written; events whose dedupe key was
    already stored are skipped silently.
    """
    if not tx:
        return []
    transfers = extract_transfers(tx, mint=mint, decimals=decimals)
    if not transfers:
        return []

    protocol = identify_protocol(tx)
    timestamp = _tx_timestamp(tx)
    written: list[TransferEvent] = []

    for ix in transfers:
        result = await classify_transfer(ix, monitored, rpc)
        if result is None:
            continue
        event = TransferEvent(
            wallet_address=result.wallet,
            amount=ix.amount,
            direction=result.direction,
            protocol=protocol,
            timestamp=timestamp,
            signature=signature,
            instruction_index=ix.position,
        )
        if await store.insert_transfer_if_absent(event):
            logger.info(
                "%s %s %.6f via %s (%s)",
                event.direction.upper(), event.wallet_address, event.amount,
                protocol, signature[:12],
            )
            written.append(event)
        else:
            logger.debug("Duplicate transfer %s/%s ignored", signature[:12], ix.position)
    return written
