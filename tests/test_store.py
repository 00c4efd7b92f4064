"""Tests for the SQLite persistence sink (store.py)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from holder_tracker.models import MonitoredWallet, TransferEvent

T0 = datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)


def _event(sig="sig1", pos="0", wallet="W1", direction="buy", amount=1.0, ts=T0):
    return TransferEvent(
        wallet_address=wallet,
        amount=amount,
        direction=direction,
        protocol="jupiter",
        timestamp=ts,
        signature=sig,
        instruction_index=pos,
    )


def _holder(address, balance, rank, share):
    return MonitoredWallet(address=address, balance=balance, rank=rank, share_pct=share)


class TestTransfers:

    @pytest.mark.asyncio
    async def test_insert_is_idempotent(self, store):
        assert await store.insert_transfer_if_absent(_event()) is True
        assert await store.insert_transfer_if_absent(_event(amount=99.0)) is False
        assert await store.count_transfers() == 1
        rows = await store.query_transfers()
        assert rows[0].amount == 1.0

    @pytest.mark.asyncio
    async def test_same_signature_other_instruction(self, store):
        assert await store.insert_transfer_if_absent(_event(pos="0"))
        assert await store.insert_transfer_if_absent(_event(pos="2.1"))
        assert await store.count_transfers() == 2

    @pytest.mark.asyncio
    async def test_round_trip_fields(self, store):
        await store.insert_transfer_if_absent(_event(direction="sell", pos="3.0"))
        (row,) = await store.query_transfers()
        assert row.direction == "sell"
        assert row.protocol == "jupiter"
        assert row.timestamp == T0
        assert row.dedupe_key == ("sig1", "3.0")

    @pytest.mark.asyncio
    async def test_filters(self, store):
        await store.insert_transfer_if_absent(_event("a", wallet="W1", direction="buy", ts=T0))
        await store.insert_transfer_if_absent(
            _event("b", wallet="W1", direction="sell", ts=T0 + timedelta(hours=1))
        )
        await store.insert_transfer_if_absent(
            _event("c", wallet="W2", direction="buy", ts=T0 + timedelta(hours=2))
        )

        by_wallet = await store.query_transfers(wallet="W1")
        assert [r.signature for r in by_wallet] == ["b", "a"]

        buys = await store.query_transfers(direction="buy")
        assert [r.signature for r in buys] == ["c", "a"]

        window = await store.query_transfers(
            start=T0 + timedelta(minutes=30), end=T0 + timedelta(minutes=90),
        )
        assert [r.signature for r in window] == ["b"]

    @pytest.mark.asyncio
    async def test_pagination_newest_first(self, store):
        for i in range(5):
            await store.insert_transfer_if_absent(
                _event(f"s{i}", ts=T0 + timedelta(minutes=i))
            )
        page1 = await store.query_transfers(page=1, limit=2)
        page3 = await store.query_transfers(page=3, limit=2)
        assert [r.signature for r in page1] == ["s4", "s3"]
        assert [r.signature for r in page3] == ["s0"]


class TestHolders:

    @pytest.mark.asyncio
    async def test_empty(self, store):
        assert await store.list_holders() == []
        assert await store.latest_snapshot_at() is None

    @pytest.mark.asyncio
    async def test_upsert_last_write_wins(self, store):
        await store.upsert_holder(_holder("W1", 100, 1, 80.0), snapshot_at=T0)
        await store.upsert_holder(
            _holder("W1", 50, 2, 40.0), snapshot_at=T0 + timedelta(hours=1)
        )
        (row,) = await store.list_holders()
        assert (row.balance, row.rank, row.share_pct) == (50, 2, 40.0)

    @pytest.mark.asyncio
    async def test_lists_latest_snapshot_by_rank(self, store):
        later = T0 + timedelta(hours=1)
        await store.upsert_holder(_holder("Old", 10, 1, 100.0), snapshot_at=T0)
        await store.upsert_holder(_holder("B", 30, 2, 37.5), snapshot_at=later)
        await store.upsert_holder(_holder("A", 50, 1, 62.5), snapshot_at=later)

        holders = await store.list_holders()
        assert [h.address for h in holders] == ["A", "B"]
        assert await store.list_holder_addresses() == ["A", "B"]
        assert await store.latest_snapshot_at() == later
