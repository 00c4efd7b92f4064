"""
Versioned monitored-wallet set.

The holder snapshot is the only writer; both ingestion paths read.  A refresh
publishes a brand-new immutable :class:`WalletSet` instead of mutating the
current one, so a classifier that grabbed ``registry.current`` keeps a
consistent view for the whole transaction even if a refresh lands mid-way.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletSet:
    version: int
    addresses: frozenset[str] = field(default_factory=frozenset)
    published_at: Optional[datetime] = None

    def __contains__(self, address: object) -> bool:
        return address in self.addresses

    def __iter__(self) -> Iterator[str]:
        return iter(self.addresses)

    def __len__(self) -> int:
        return len(self.addresses)


class WalletRegistry:
    """Holds the current :class:`WalletSet`; swaps it atomically on publish."""

    def __init__(self, addresses: Iterable[str] = ()) -> None:
        self._current = WalletSet(version=0, addresses=frozenset(addresses))

    @property
    def current(self) -> WalletSet:
        return self._current

    def publish(self, addresses: Iterable[str]) -> WalletSet:
        new = WalletSet(
            version=self._current.version + 1,
            addresses=frozenset(a for a in addresses if a),
            published_at=datetime.now(tz=timezone.utc),
        )
        self._current = new
        logger.info("Published wallet set v%d (%d wallets)", new.version, len(new))
        return new
