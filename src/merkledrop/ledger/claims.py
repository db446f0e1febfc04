"""Claim tracker — exactly-once redemption per (epoch, identity).

Records are write-once. There is no public way to clear one: the only
removal path is the ledger's rollback of an operation that never
committed.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Set

from merkledrop.ledger.errors import AlreadyClaimed


class ClaimTracker:
    """Per-epoch sets of identities that have claimed."""

    def __init__(self) -> None:
        self._claimed: Dict[int, Set[str]] = defaultdict(set)

    def is_claimed(self, epoch_id: int, identity: str) -> bool:
        return identity in self._claimed.get(epoch_id, ())

    def mark(self, epoch_id: int, identity: str) -> None:
        """Record a claim. Raises AlreadyClaimed if one already exists."""
        claimed = self._claimed[epoch_id]
        if identity in claimed:
            raise AlreadyClaimed(f"{identity} already claimed from epoch {epoch_id}")
        claimed.add(identity)

    def claimants(self, epoch_id: int) -> frozenset[str]:
        return frozenset(self._claimed.get(epoch_id, ()))

    def count(self, epoch_id: int) -> int:
        return len(self._claimed.get(epoch_id, ()))

    def _unmark(self, epoch_id: int, identity: str) -> None:
        self._claimed[epoch_id].discard(identity)
