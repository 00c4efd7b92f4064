"""
Shared utilities for the Holder Tracker.

- ``parse_datetime`` — unified datetime parsing (block times, API query
  strings, stored ISO timestamps)
- ``gather_paced`` — bounded fan-out with per-item delay and inter-batch
  pauses, used by every stage that has to stay under RPC rate limits
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Unified datetime parser
# ---------------------------------------------------------------------------

def parse_datetime(value: object) -> Optional[datetime]:
    """Convert a value to a timezone-aware ``datetime`` (UTC).

    Accepted inputs:

    - ``None`` → ``None``
    - ``datetime`` → pass-through, with ``tzinfo`` set to UTC if naïve
    - ``str`` → ISO-format (handles both ``"Z"`` and ``"+00:00"`` suffixes)
    - ``int`` / ``float`` → Unix epoch timestamp in seconds
    - Anything else → ``None``
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    if isinstance(value, str):
        try:
            cleaned = value.replace("Z", "+00:00") if value.endswith("Z") else value
            dt = datetime.fromisoformat(cleaned)
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt
        except (ValueError, TypeError):
            return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc)
        except (ValueError, OSError, OverflowError):
            return None

    return None


# ---------------------------------------------------------------------------
# Paced bounded fan-out
# ---------------------------------------------------------------------------

async def gather_paced(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[Any]],
    *,
    batch_size: int,
    item_delay: float = 0.0,
    batch_pause: float = 0.0,
) -> list[Any]:
    """Run *worker* over *items* in sequential batches of *batch_size*.

    Items inside a batch run concurrently, each preceded by *item_delay*
    seconds.  Batches are separated by *batch_pause* seconds.  Results keep
    input order; a failing item yields its exception in place of a result
    and never aborts its siblings.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    async def _paced(item: T) -> Any:
        if item_delay > 0:
            await asyncio.sleep(item_delay)
        return await worker(item)

    results: list[Any] = []
    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        results.extend(
            await asyncio.gather(*(_paced(item) for item in batch), return_exceptions=True)
        )
        if batch_pause > 0 and start + batch_size < len(items):
            await asyncio.sleep(batch_pause)
    return results
