"""Tests for HolderTracker orchestration."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from holder_tracker.data_sources._retry import RpcUnavailableError
from holder_tracker.models import MonitoredWallet, RawTokenAccount
from holder_tracker.store import TransferStore
from holder_tracker.tracker import HolderTracker


def _tracker(rpc, store, mint, **kwargs):
    return HolderTracker(
        mint=mint, rpc=rpc, store=store, ws_endpoint="wss://rpc.example.com", **kwargs,
    )


def test_mint_required(fake_rpc, tmp_path):
    with pytest.raises(ValueError):
        HolderTracker(mint="", rpc=fake_rpc({}), store=TransferStore(str(tmp_path / "h.db")))


@pytest.mark.asyncio
async def test_seed_from_stored_snapshot(fake_rpc, store, mint):
    await store.upsert_holder(
        MonitoredWallet(address="W1", balance=10, share_pct=100.0, rank=1),
        snapshot_at=datetime.now(tz=timezone.utc),
    )
    rpc = fake_rpc({})
    tracker = _tracker(rpc, store, mint)

    assert await tracker.seed_registry() == 1
    assert "W1" in tracker.registry.current
    rpc.list_token_accounts.assert_not_awaited()


@pytest.mark.asyncio
async def test_seed_builds_first_snapshot(fake_rpc, store, mint):
    rpc = fake_rpc({"Acc0": "W0", "Acc1": "W1"})
    rpc.list_token_accounts.return_value = [
        RawTokenAccount(address="Acc0", amount=30),
        RawTokenAccount(address="Acc1", amount=10),
    ]
    tracker = _tracker(rpc, store, mint)

    assert await tracker.seed_registry() == 2
    assert set(tracker.registry.current) == {"W0", "W1"}
    assert await store.list_holder_addresses() == ["W0", "W1"]


@pytest.mark.asyncio
async def test_subscription_feeds_queue(fake_rpc, store, mint):
    tracker = _tracker(fake_rpc({}), store, mint)
    await tracker.subscription.handle_message(
        '{"method":"logsNotification","params":{"result":{"value":{"signature":"s1"}}}}'
    )
    assert len(tracker.queue) == 1
    await tracker.queue.stop()


@pytest.mark.asyncio
async def test_start_and_stop(fake_rpc, store, mint):
    await store.upsert_holder(
        MonitoredWallet(address="W1", balance=10, share_pct=100.0, rank=1),
        snapshot_at=datetime.now(tz=timezone.utc),
    )
    rpc = fake_rpc({})
    tracker = _tracker(rpc, store, mint, refresh_seconds=3600)
    tracker.subscription.start = AsyncMock()

    await tracker.start()
    await asyncio.sleep(0.05)
    status = tracker.status()
    await tracker.stop()

    assert status["mint"] == mint
    assert status["wallet_set"] == {"version": 1, "wallets": 1}
    assert status["subscription"] == "disconnected"
    assert status["backfill"]["finished"] is True
    assert set(status) >= {"queue", "rpc"}
    rpc.get_token_accounts_by_owner.assert_awaited_once_with("W1", mint)


@pytest.mark.asyncio
async def test_start_survives_failed_first_snapshot(fake_rpc, store, mint):
    rpc = fake_rpc({})
    rpc.list_token_accounts.side_effect = RpcUnavailableError("getProgramAccounts", 5)
    tracker = _tracker(rpc, store, mint, refresh_seconds=3600)
    tracker.subscription.start = AsyncMock()

    await tracker.start()
    try:
        assert len(tracker.registry.current) == 0
        assert tracker.queue._worker is not None
        assert not tracker.queue._worker.done()
        assert len(tracker._tasks) == 3
        tracker.subscription.start.assert_called_once()
    finally:
        await tracker.stop()
