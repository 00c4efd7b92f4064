"""Tests for transfer_classifier — extraction and buy/sell direction."""

from __future__ import annotations

import pytest

from holder_tracker.models import TransferInstruction
from holder_tracker.transfer_classifier import (
    classify_transfer,
    decide_direction,
    extract_transfers,
    resolve_parties,
)

W = "WalletWWWWWWWWWWWWWWWWWWWWWWWWWWWWWWWWWWWW"
Z = "WalletZZZZZZZZZZZZZZZZZZZZZZZZZZZZZZZZZZZZ"
V = "WalletVVVVVVVVVVVVVVVVVVVVVVVVVVVVVVVVVVVV"


def _ix(source="AccW", destination="AccZ", authority="") -> TransferInstruction:
    return TransferInstruction(
        position="0", source=source, destination=destination,
        authority=authority, amount=10.0,
    )


# ---------------------------------------------------------------------------
# decide_direction
# ---------------------------------------------------------------------------

class TestDecideDirection:

    def test_sender_monitored_is_sell(self):
        r = decide_direction(W, Z, {W})
        assert (r.direction, r.wallet) == ("sell", W)

    def test_receiver_monitored_is_buy(self):
        r = decide_direction(Z, W, {W})
        assert (r.direction, r.wallet) == ("buy", W)

    def test_both_monitored_is_sell_of_sender(self):
        r = decide_direction(W, V, {W, V})
        assert (r.direction, r.wallet) == ("sell", W)

    def test_neither_monitored_is_none(self):
        assert decide_direction(Z, V, {W}) is None

    def test_unknown_parties_is_none(self):
        assert decide_direction(None, None, {W}) is None


# ---------------------------------------------------------------------------
# resolve_parties / classify_transfer
# ---------------------------------------------------------------------------

class TestClassifyTransfer:

    @pytest.mark.asyncio
    async def test_resolved_sell(self, fake_rpc):
        rpc = fake_rpc({"AccW": W, "AccZ": Z})
        result = await classify_transfer(_ix(), {W}, rpc)
        assert (result.direction, result.wallet) == ("sell", W)

    @pytest.mark.asyncio
    async def test_resolved_buy(self, fake_rpc):
        rpc = fake_rpc({"AccW": W, "AccZ": Z})
        result = await classify_transfer(_ix(source="AccZ", destination="AccW"), {W}, rpc)
        assert (result.direction, result.wallet) == ("buy", W)

    @pytest.mark.asyncio
    async def test_one_side_fails_falls_back_to_authority(self, fake_rpc):
        rpc = fake_rpc({"AccW": W})  # AccZ unresolvable
        sender, receiver = await resolve_parties(_ix(authority=W), rpc)
        assert (sender, receiver) == (W, None)

    @pytest.mark.asyncio
    async def test_authority_fallback_classifies_sell(self, fake_rpc):
        rpc = fake_rpc({})
        result = await classify_transfer(_ix(authority=W), {W}, rpc)
        assert (result.direction, result.wallet) == ("sell", W)

    @pytest.mark.asyncio
    async def test_fallback_drops_receiver(self, fake_rpc):
        """With the degraded path, a buy into a monitored wallet is lost."""
        rpc = fake_rpc({"AccW": W})
        result = await classify_transfer(
            _ix(source="AccUnknown", destination="AccW", authority=Z), {W}, rpc,
        )
        assert result is None

    @pytest.mark.asyncio
    async def test_both_unresolved_no_authority_match(self, fake_rpc):
        rpc = fake_rpc({})
        assert await classify_transfer(_ix(authority=Z), {W}, rpc) is None

    @pytest.mark.asyncio
    async def test_never_both_directions(self, fake_rpc):
        rpc = fake_rpc({"AccW": W, "AccV": V})
        result = await classify_transfer(_ix(source="AccW", destination="AccV"), {W, V}, rpc)
        assert result.direction == "sell"


# ---------------------------------------------------------------------------
# extract_transfers
# ---------------------------------------------------------------------------

class TestExtractTransfers:

    def test_top_level_and_inner_positions(self, build_tx, build_transfer, mint):
        tx = build_tx(
            [
                {"program": "system", "parsed": {"type": "transfer", "info": {}}},
                build_transfer("AccW", "AccZ", 2_500_000, authority=W),
            ],
            inner=[{"index": 0, "instructions": [
                {"programId": "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB"},
                build_transfer("AccZ", "AccW", 1_000_000, checked=True),
            ]}],
        )
        transfers = extract_transfers(tx, mint=mint, decimals=6)
        assert [(t.position, t.amount) for t in transfers] == [("1", 2.5), ("0.1", 1.0)]
        assert transfers[0].authority == W
        assert transfers[1].mint == mint

    def test_transfer_checked_other_mint_ignored(self, build_tx, build_transfer, mint):
        tx = build_tx([build_transfer("A", "B", 5, checked=True, mint="OtherMint")])
        assert extract_transfers(tx, mint=mint) == []

    def test_plain_transfer_of_other_mint_ignored(self, build_tx, build_transfer, mint):
        tx = build_tx(
            [build_transfer("AccX", "AccY", 5)],
            account_keys=["Payer", "AccX", "AccY"],
            token_balances=[{"accountIndex": 1, "mint": "OtherMint"}],
        )
        assert extract_transfers(tx, mint=mint) == []

    def test_plain_transfer_of_tracked_mint_kept(self, build_tx, build_transfer, mint):
        tx = build_tx(
            [build_transfer("AccX", "AccY", 5_000_000)],
            account_keys=["Payer", "AccX", "AccY"],
            token_balances=[{"accountIndex": 2, "mint": mint}],
        )
        assert [t.amount for t in extract_transfers(tx, mint=mint)] == [5.0]

    def test_non_transfer_token_instructions_ignored(self, build_tx, mint):
        ix = {"program": "spl-token", "parsed": {"type": "burn", "info": {"amount": "1"}}}
        assert extract_transfers(build_tx([ix]), mint=mint) == []

    def test_empty_tx(self, mint):
        assert extract_transfers(None, mint=mint) == []
