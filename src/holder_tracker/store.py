"""
SQLite persistence sink for the Holder Tracker.

Two tables:

* ``top_wallets`` — one row per wallet, upserted on every snapshot refresh
  (last write wins on balance, share and rank).
* ``transactions`` — classified transfers, written once.  The dedupe key is
  ``(signature, instruction_index)``; a second insert with the same key is a
  silent no-op, which is what lets the backfill and the live queue race on
  the same signature safely.

Uses a persistent ``aiosqlite`` connection created lazily on first access.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Optional

import aiosqlite

from .models import MonitoredWallet, TransferEvent
from .utils import parse_datetime

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS top_wallets (
        wallet_address   TEXT PRIMARY KEY,
        token_amount     REAL NOT NULL,
        percentage_share REAL NOT NULL,
        rank             INTEGER NOT NULL DEFAULT 0,
        token_account    TEXT NOT NULL DEFAULT '',
        snapshot_at      TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id                INTEGER PRIMARY KEY AUTOINCREMENT,
        wallet_address    TEXT NOT NULL,
        amount            REAL NOT NULL,
        type              TEXT NOT NULL CHECK (type IN ('buy', 'sell')),
        protocol          TEXT NOT NULL,
        "timestamp"       TEXT NOT NULL,
        signature         TEXT NOT NULL,
        instruction_index TEXT NOT NULL,
        UNIQUE (signature, instruction_index)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tx_wallet ON transactions(wallet_address)",
    'CREATE INDEX IF NOT EXISTS idx_tx_timestamp ON transactions("timestamp")',
)


class TransferStore:
    """Async SQLite-backed holder and transfer store."""

    def __init__(self, db_path: str = "data/holders.db") -> None:
        self._db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None

    async def _get_conn(self) -> aiosqlite.Connection:
        if self._conn is not None:
            return self._conn
        if self._db_path != ":memory:":
            os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
        conn = await aiosqlite.connect(self._db_path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        for statement in _SCHEMA:
            await conn.execute(statement)
        await conn.commit()
        self._conn = conn
        return conn

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    # ------------------------------------------------------------------
    # Holders
    # ------------------------------------------------------------------

    async def upsert_holder(
        self, wallet: MonitoredWallet, *, snapshot_at: datetime
    ) -> None:
        db = await self._get_conn()
        await db.execute(
            """
            INSERT INTO top_wallets
                (wallet_address, token_amount, percentage_share, rank, token_account, snapshot_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT (wallet_address) DO UPDATE SET
                token_amount = excluded.token_amount,
                percentage_share = excluded.percentage_share,
                rank = excluded.rank,
                token_account = excluded.token_account,
                snapshot_at = excluded.snapshot_at
            """,
            (
                wallet.address,
                wallet.balance,
                wallet.share_pct,
                wallet.rank,
                wallet.token_account,
                snapshot_at.isoformat(),
            ),
        )
        await db.commit()

    async def latest_snapshot_at(self) -> Optional[datetime]:
        db = await self._get_conn()
        cursor = await db.execute("SELECT MAX(snapshot_at) FROM top_wallets")
        row = await cursor.fetchone()
        return parse_datetime(row[0]) if row and row[0] else None

    async def list_holders(self) -> list[MonitoredWallet]:
        """The most recent snapshot, ordered by rank."""
        db = await self._get_conn()
        cursor = await db.execute(
            """
            SELECT wallet_address, token_amount, percentage_share, rank, token_account
            FROM top_wallets
            WHERE snapshot_at = (SELECT MAX(snapshot_at) FROM top_wallets)
            ORDER BY rank ASC
            """
        )
        rows = await cursor.fetchall()
        return [
            MonitoredWallet(
                address=r["wallet_address"],
                balance=r["token_amount"],
                share_pct=r["percentage_share"],
                rank=r["rank"],
                token_account=r["token_account"],
            )
            for r in rows
        ]

    async def list_holder_addresses(self) -> list[str]:
        return [w.address for w in await self.list_holders()]

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def insert_transfer_if_absent(self, event: TransferEvent) -> bool:
        """Insert *event*; returns ``False`` if its dedupe key already exists."""
        db = await self._get_conn()
        cursor = await db.execute(
            """
            INSERT INTO transactions
                (wallet_address, amount, type, protocol, "timestamp", signature, instruction_index)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (signature, instruction_index) DO NOTHING
            """,
            (
                event.wallet_address,
                event.amount,
                event.direction,
                event.protocol,
                event.timestamp.isoformat(),
                event.signature,
                event.instruction_index,
            ),
        )
        await db.commit()
        return cursor.rowcount > 0

    async def query_transfers(
        self,
        *,
        wallet: Optional[str] = None,
        direction: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: int = 50,
    ) -> list[TransferEvent]:
        """Filtered, paginated transfers, newest first."""
        clauses: list[str] = []
        params: list[Any] = []
        if wallet:
            clauses.append("wallet_address = ?")
            params.append(wallet)
        if direction:
            clauses.append("type = ?")
            params.append(direction)
        if start:
            clauses.append('"timestamp" >= ?')
            params.append(start.isoformat())
        if end:
            clauses.append('"timestamp" <= ?')
            params.append(end.isoformat())
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.extend([limit, (max(page, 1) - 1) * limit])

        db = await self._get_conn()
        cursor = await db.execute(
            f"""
            SELECT wallet_address, amount, type, protocol, "timestamp",
                   signature, instruction_index
            FROM transactions
            {where}
            ORDER BY "timestamp" DESC, id DESC
            LIMIT ? OFFSET ?
            """,
            params,
        )
        rows = await cursor.fetchall()
        return [
            TransferEvent(
                wallet_address=r["wallet_address"],
                amount=r["amount"],
                direction=r["type"],
                protocol=r["protocol"],
                timestamp=parse_datetime(r["timestamp"]),
                signature=r["signature"],
                instruction_index=r["instruction_index"],
            )
            for r in rows
        ]

    async def count_transfers(self) -> int:
        db = await self._get_conn()
        cursor = await db.execute("SELECT COUNT(*) FROM transactions")
        (count,) = await cursor.fetchone()
        return count
