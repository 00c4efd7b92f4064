"""
Centralized constants for the Holder Tracker.

This file contains:
- Solana program addresses and the SPL token account layout
- The protocol registry used for DEX attribution

Import from this module rather than duplicating values across services.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Solana Program Addresses (fixed by the Solana protocol)
# ---------------------------------------------------------------------------
SYSTEM_PROGRAM = "11111111111111111111111111111111"
TOKEN_PROGRAM = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

# ---------------------------------------------------------------------------
# SPL token account layout (165 bytes)
#   0..32   mint
#   32..64  owner
#   64..72  amount (u64 LE)
# ---------------------------------------------------------------------------
TOKEN_ACCOUNT_SIZE = 165
MINT_OFFSET = 0
OWNER_OFFSET = 32
AMOUNT_OFFSET = 64
AMOUNT_LENGTH = 8

# Parsed instruction markers (jsonParsed encoding)
SPL_TOKEN_PROGRAM_NAME = "spl-token"
TRANSFER_TYPES: frozenset[str] = frozenset({"transfer", "transferChecked"})

UNKNOWN_PROTOCOL = "unknown"

# ---------------------------------------------------------------------------
# Protocol registry
#
# Iteration order is the attribution priority: the first protocol whose
# program identifiers intersect a transaction's participants wins.
# ---------------------------------------------------------------------------
PROTOCOL_REGISTRY: dict[str, tuple[str, ...]] = {
    "jupiter": (
        "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB",
        "JupT2iA2Zx9ZGzvq9xUCUWh6aX1tg6zVLFqzQoCvHZr",
    ),
    "raydium": (
        "4sGjMW1sUnHzSxGspuhpqLDx6wiyjNtZ",
        "EhhTKYdzFi7VrUfto5fMgDpmeJK7Fznv97kk8YvXNkmB",
    ),
    "orca": (
        "82yxjeMs8Tz3bXjQ58vByb6Q9FYc8kKa3nLJN6y3o5qN",
        "9WwGCeFJYgTt6SdwSBsXRWUnkJGw3Myk8Fjovj5zzKhN",
    ),
}
