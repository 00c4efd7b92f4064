"""Shared test fixtures for the Holder Tracker test suite."""

from __future__ import annotations

import sys
import os

# Ensure src/ is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from holder_tracker.data_sources._retry import GatewayStats
from holder_tracker.data_sources.solana_rpc import ResolutionFailure, SolanaRpcClient
from holder_tracker.store import TransferStore

MINT = "MintTrackedAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"


# ---------------------------------------------------------------------------
# Parsed-transaction builders
# ---------------------------------------------------------------------------

def transfer_ix(
    source: str,
    destination: str,
    amount: int,
    *,
    authority: str = "",
    checked: bool = False,
    mint: str = MINT,
) -> dict:
    """A jsonParsed spl-token transfer / transferChecked instruction."""
    info: dict[str, Any] = {"source": source, "destination": destination}
    if authority:
        info["authority"] = authority
    if checked:
        info["mint"] = mint
        info["tokenAmount"] = {"amount": str(amount), "decimals": 6}
        kind = "transferChecked"
    else:
        info["amount"] = str(amount)
        kind = "transfer"
    return {
        "program": "spl-token",
        "programId": "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
        "parsed": {"type": kind, "info": info},
    }


def make_tx(
    instructions: Optional[list[dict]] = None,
    *,
    inner: Optional[list[dict]] = None,
    account_keys: Optional[list[str]] = None,
    block_time: Optional[int] = 1_717_236_600,
    token_balances: Optional[list[dict]] = None,
) -> dict:
    return {
        "blockTime": block_time,
        "transaction": {
            "message": {
                "accountKeys": [
                    {"pubkey": k, "signer": i == 0, "writable": True}
                    for i, k in enumerate(account_keys or [])
                ],
                "instructions": instructions or [],
            }
        },
        "meta": {
            "err": None,
            "innerInstructions": inner or [],
            "preTokenBalances": token_balances or [],
            "postTokenBalances": [],
        },
    }


@pytest.fixture
def build_tx():
    return make_tx


@pytest.fixture
def build_transfer():
    return transfer_ix


# ---------------------------------------------------------------------------
# Fake RPC client
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_rpc():
    """Factory for a SolanaRpcClient double with a static owner map.

    Owners mapped to ``None`` (or missing) raise ``ResolutionFailure``.
    """

    def _make(owners: Optional[dict[str, Optional[str]]] = None) -> MagicMock:
        owners = owners or {}
        rpc = MagicMock(spec=SolanaRpcClient)

        async def _owner(address: str) -> str:
            owner = owners.get(address)
            if owner is None:
                raise ResolutionFailure(address)
            return owner

        rpc.get_account_owner = AsyncMock(side_effect=_owner)
        rpc.get_parsed_transaction = AsyncMock(return_value=None)
        rpc.get_token_accounts_by_owner = AsyncMock(return_value=[])
        rpc.get_signatures_for_address = AsyncMock(return_value=[])
        rpc.list_token_accounts = AsyncMock(return_value=[])
        rpc.stats = GatewayStats()
        rpc.status = MagicMock(return_value={"total_calls": 0})
        return rpc

    return _make


@pytest.fixture
async def store(tmp_path):
    s = TransferStore(db_path=str(tmp_path / "holders.db"))
    yield s
    await s.close()


@pytest.fixture
def mint():
    return MINT
