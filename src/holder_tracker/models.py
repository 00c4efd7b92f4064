"""
Pydantic models used throughout the Holder Tracker.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

Direction = Literal["buy", "sell"]


# ---------------------------------------------------------------------------
# Holder snapshot
# ---------------------------------------------------------------------------
class RawTokenAccount(BaseModel):
    """A token account decoded from ``getProgramAccounts``. Never persisted."""

    address: str = Field(..., description="Token account address")
    amount: float = Field(0.0, ge=0.0, description="Decimal-adjusted balance")
    owner: Optional[str] = Field(None, description="Owning wallet, resolved lazily")


class MonitoredWallet(BaseModel):
    """One member of the top-holder snapshot."""

    address: str = Field(..., description="Owning wallet address")
    balance: float = Field(..., ge=0.0, description="Decimal-adjusted token balance")
    share_pct: float = Field(
        ..., ge=0.0, le=100.0,
        description="balance / sum of tracked balances × 100, 2 decimals",
    )
    rank: int = Field(..., ge=1)
    token_account: str = Field("", description="Token account the balance was read from")


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------
class TransferInstruction(BaseModel):
    """A transfer-shaped SPL Token instruction lifted out of a transaction."""

    position: str = Field(..., description="'i' for top-level, 'i.j' for inner")
    source: str
    destination: str
    authority: str = ""
    amount: float = Field(0.0, ge=0.0)
    mint: str = ""


class TransferClassification(BaseModel):
    direction: Direction
    wallet: str


class TransferEvent(BaseModel):
    """A classified transfer, persisted once under ``(signature, position)``."""

    wallet_address: str
    amount: float
    direction: Direction
    protocol: str = "unknown"
    timestamp: datetime
    signature: str
    instruction_index: str

    @property
    def dedupe_key(self) -> tuple[str, str]:
        return (self.signature, self.instruction_index)


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------
class TopWalletsResponse(BaseModel):
    snapshot_at: Optional[datetime] = None
    top_wallets: list[MonitoredWallet] = Field(default_factory=list)


class TransactionsPage(BaseModel):
    page: int
    limit: int
    transactions: list[TransferEvent] = Field(default_factory=list)
