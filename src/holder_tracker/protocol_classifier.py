"""
DEX protocol attribution.

A transaction is attributed to the first protocol, in registry order, whose
program identifiers intersect the transaction's participants: its top-level
account keys plus the program ids of its inner instructions.  First match
wins; there is no scoring.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Sequence

from .constants import PROTOCOL_REGISTRY, UNKNOWN_PROTOCOL

logger = logging.getLogger(__name__)


def _key_of(entry: Any) -> Optional[str]:
    # jsonParsed gives {pubkey, signer, writable}; legacy encodings give str
    if isinstance(entry, dict):
        return entry.get("pubkey")
    if isinstance(entry, str):
        return entry
    return None


def collect_participants(tx: Mapping[str, Any]) -> set[str]:
    """Top-level account keys and inner-instruction program ids of *tx*."""
    message = (tx.get("transaction") or {}).get("message") or {}
    participants = {k for k in map(_key_of, message.get("accountKeys") or []) if k}

    for group in (tx.get("meta") or {}).get("innerInstructions") or []:
        for ix in group.get("instructions") or []:
            program_id = ix.get("programId")
            if program_id:
                participants.add(program_id)
    return participants


def identify_protocol(
    tx: Optional[Mapping[str, Any]],
    registry: Mapping[str, Sequence[str]] = PROTOCOL_REGISTRY,
) -> str:
    """Return the attributed protocol name for *tx*, or ``"unknown"``."""
    if not tx:
        return UNKNOWN_PROTOCOL
    participants = collect_participants(tx)
    for protocol, program_ids in registry.items():
        if participants.intersection(program_ids):
            return protocol
    logger.debug("No protocol matched (%d participants)", len(participants))
    return UNKNOWN_PROTOCOL
