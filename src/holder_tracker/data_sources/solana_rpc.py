"""
Solana RPC client helpers for the Holder Tracker.

Uses the standard JSON-RPC interface. The public
``api.mainnet-beta.solana.com`` endpoint works but is aggressively
rate-limited, so every method goes through the gateway retry policy in
:mod:`._retry`.  Unlike a best-effort enrichment client, failures here are
raised: callers decide what a failed call means for their stage.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional

import httpx

from ._retry import GatewayStats, call_with_retry, post_json_rpc
from ..constants import (
    AMOUNT_LENGTH,
    AMOUNT_OFFSET,
    MINT_OFFSET,
    TOKEN_ACCOUNT_SIZE,
    TOKEN_PROGRAM,
)
from ..models import RawTokenAccount

logger = logging.getLogger(__name__)


class ResolutionFailure(Exception):
    """The owning wallet of a token account could not be determined."""

    def __init__(self, address: str, reason: str = "owner not found") -> None:
        super().__init__(f"{address}: {reason}")
        self.address = address


def decode_token_amount(data: bytes, decimals: int) -> float:
    """Read the u64 LE amount of an SPL token account, decimal-adjusted."""
    raw = data[AMOUNT_OFFSET:AMOUNT_OFFSET + AMOUNT_LENGTH]
    if len(raw) != AMOUNT_LENGTH:
        raise ValueError(f"token account data too short ({len(data)} bytes)")
    return int.from_bytes(raw, "little") / (10 ** decimals)


def _account_bytes(account: dict[str, Any]) -> bytes:
    data = account.get("data")
    # base64 encoding returns [payload, "base64"]
    if isinstance(data, list) and data:
        return base64.b64decode(data[0])
    if isinstance(data, str):
        return base64.b64decode(data)
    raise ValueError("unsupported account data encoding")


class SolanaRpcClient:
    """Async Solana JSON-RPC client behind the rate-limit gateway."""

    def __init__(
        self,
        endpoint: str,
        timeout: int = 15,
        *,
        max_attempts: int = 5,
        backoff: float = 1.5,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._id_counter = 0
        self._max_attempts = max_attempts
        self._backoff = backoff
        self.stats = GatewayStats()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def status(self) -> dict[str, Any]:
        return {"endpoint": self._endpoint, **self.stats.as_dict()}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def list_token_accounts(
        self, mint: str, *, decimals: int = 6
    ) -> list[RawTokenAccount]:
        """Every SPL token account of *mint*, with its decoded balance.

        Filters on the 165-byte account size and the mint prefix at offset 0.
        Accounts whose data cannot be decoded are skipped.
        """
        result = await self._call(
            "getProgramAccounts",
            [
                TOKEN_PROGRAM,
                {
                    "encoding": "base64",
                    "filters": [
                        {"dataSize": TOKEN_ACCOUNT_SIZE},
                        {"memcmp": {"offset": MINT_OFFSET, "bytes": mint}},
                    ],
                },
            ],
        )
        accounts: list[RawTokenAccount] = []
        for entry in result or []:
            try:
                data = _account_bytes(entry["account"])
                accounts.append(
                    RawTokenAccount(
                        address=entry["pubkey"],
                        amount=decode_token_amount(data, decimals),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug("Skipping undecodable account %s: %s", entry.get("pubkey"), exc)
        return accounts

    async def get_account_owner(self, address: str) -> str:
        """Return the wallet that owns token account *address*.

        Raises :class:`ResolutionFailure` when the account is closed or is
        not a parsed token account.
        """
        result = await self._call(
            "getAccountInfo",
            [address, {"encoding": "jsonParsed"}],
        )
        value = (result or {}).get("value") if isinstance(result, dict) else None
        try:
            owner = value["data"]["parsed"]["info"]["owner"]
        except (KeyError, TypeError):
            raise ResolutionFailure(address) from None
        if not owner:
            raise ResolutionFailure(address)
        return owner

    async def get_token_accounts_by_owner(self, wallet: str, mint: str) -> list[str]:
        """Addresses of the token accounts *wallet* holds for *mint*."""
        result = await self._call(
            "getTokenAccountsByOwner",
            [
                wallet,
                {"mint": mint},
                {"encoding": "jsonParsed"},
            ],
        )
        if not result or not isinstance(result, dict):
            return []
        return [a["pubkey"] for a in result.get("value") or [] if a.get("pubkey")]

    async def get_signatures_for_address(
        self, address: str, *, limit: int = 100
    ) -> list[dict[str, Any]]:
        """Most recent signatures referencing *address*, newest first."""
        result = await self._call(
            "getSignaturesForAddress",
            [address, {"limit": limit}],
        )
        if not isinstance(result, list):
            return []
        return result

    async def get_parsed_transaction(self, signature: str) -> Optional[dict[str, Any]]:
        """Fetch *signature* in ``jsonParsed`` form, or ``None`` if not found."""
        result = await self._call(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": "confirmed",
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )
        if isinstance(result, dict):
            return result
        return None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _call(self, method: str, params: list[Any] | dict) -> Any:
        """One JSON-RPC call under the gateway retry policy."""
        self._id_counter += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._id_counter,
            "method": method,
            "params": params,
        }
        client = await self._get_client()
        label = f"Solana RPC ({method})"

        async def _do() -> Any:
            return await post_json_rpc(
                client, self._endpoint, json_payload=payload, label=label,
            )

        return await call_with_retry(
            _do,
            max_attempts=self._max_attempts,
            backoff=self._backoff,
            label=label,
            stats=self.stats,
        )
