"""
RPC gateway: rate-limit aware retry for every ledger call.

Policy
------
* Only a rate-limit signal (:class:`RateLimitedError`) is retried.
* At most ``max_attempts`` attempts in total, sleeping
  ``backoff * attempt_number`` seconds between consecutive attempts.
* Any other exception propagates immediately, untouched.
* Exhausting the budget raises :class:`RpcUnavailableError`, chained to the
  last rate-limit error.

Every call through the gateway may therefore block for several seconds.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

_RATE_LIMIT_CODES = frozenset({429, -32429})
_RATE_LIMIT_MARKERS = ("429", "rate limit", "rate-limit", "too many requests")


class RpcError(Exception):
    """A JSON-RPC call failed (HTTP error or ``error`` member in the body)."""

    def __init__(self, message: str, *, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


class RateLimitedError(RpcError):
    """The node asked us to slow down. Transient, retried by the gateway."""


class RpcUnavailableError(Exception):
    """Retry budget exhausted. Terminal for that single call."""

    def __init__(self, label: str, attempts: int) -> None:
        super().__init__(f"{label}: still rate-limited after {attempts} attempts")
        self.label = label
        self.attempts = attempts


@dataclass
class GatewayStats:
    total_calls: int = 0
    rate_limited: int = 0
    retries: int = 0
    unavailable: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total_calls": self.total_calls,
            "rate_limited": self.rate_limited,
            "retries": self.retries,
            "unavailable": self.unavailable,
            "failed": self.failed,
        }


def is_rate_limit_message(message: str) -> bool:
    text = (message or "").lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


async def call_with_retry(
    operation: Callable[[], Awaitable[Any]],
    *,
    max_attempts: int = 5,
    backoff: float = 1.5,
    label: str = "RPC",
    stats: Optional[GatewayStats] = None,
) -> Any:
    """Run *operation* (a zero-arg coroutine factory) under the retry policy."""
    if stats is not None:
        stats.total_calls += 1

    last_exc: Optional[RateLimitedError] = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except RateLimitedError as exc:
            last_exc = exc
            if stats is not None:
                stats.rate_limited += 1
            if attempt == max_attempts:
                break
            wait = backoff * attempt
            logger.warning(
                "%s rate-limited, retrying in %.1fs (attempt %d/%d)",
                label, wait, attempt, max_attempts,
            )
            if stats is not None:
                stats.retries += 1
            await asyncio.sleep(wait)
        except Exception:
            if stats is not None:
                stats.failed += 1
            raise

    if stats is not None:
        stats.unavailable += 1
    logger.warning("%s unavailable after %d attempts", label, max_attempts)
    raise RpcUnavailableError(label, max_attempts) from last_exc


async def post_json_rpc(
    client: httpx.AsyncClient,
    url: str,
    *,
    json_payload: Any,
    label: str = "RPC",
) -> Any:
    """POST one JSON-RPC request and return its ``result`` member.

    Raises :class:`RateLimitedError` on HTTP 429 or a rate-limit error body,
    :class:`RpcError` on any other HTTP or RPC-level error.  Transport errors
    (``httpx.RequestError``) are left to propagate.
    """
    resp = await client.post(url, json=json_payload)
    if resp.status_code == 429:
        raise RateLimitedError(f"{label}: HTTP 429", code=429)
    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise RpcError(f"{label}: HTTP {resp.status_code}", code=resp.status_code) from exc

    body = resp.json()
    error = body.get("error") if isinstance(body, dict) else None
    if error:
        code = error.get("code") if isinstance(error, dict) else None
        message = error.get("message", "") if isinstance(error, dict) else str(error)
        if code in _RATE_LIMIT_CODES or is_rate_limit_message(message):
            raise RateLimitedError(f"{label}: {message}", code=code)
        raise RpcError(f"{label}: {message}", code=code)
    if isinstance(body, dict) and "result" in body:
        return body["result"]
    return body
