"""Epoch records — one funded, time-boxed distribution cycle.

An epoch is created active and never becomes active again once it is
cancelled. Expiry is not stored: it is evaluated against the clock on
every call (``now > end_time`` with ``end_time != 0``).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class EpochStatus(str, enum.Enum):
    """Observed lifecycle state of an epoch at a given instant."""
    PENDING = "pending"      # active, before start_time
    ACTIVE = "active"        # claimable
    EXPIRED = "expired"      # active flag set, but past end_time
    CANCELLED = "cancelled"  # terminal


@dataclass(frozen=True)
class Epoch:
    """Immutable snapshot of an epoch.

    The ledger replaces the stored snapshot on every mutation, so a
    reference handed out to a caller never changes underneath it.
    """
    epoch_id: int
    root: bytes
    total_amount: int
    asset: str
    start_time: int
    end_time: int
    claimed_amount: int = 0
    active: bool = True

    @property
    def remaining(self) -> int:
        return self.total_amount - self.claimed_amount

    def status_at(self, now: int) -> EpochStatus:
        if not self.active:
            return EpochStatus.CANCELLED
        if now < self.start_time:
            return EpochStatus.PENDING
        if self.end_time != 0 and now > self.end_time:
            return EpochStatus.EXPIRED
        return EpochStatus.ACTIVE

    def is_claimable_at(self, now: int) -> bool:
        return self.status_at(now) == EpochStatus.ACTIVE


@dataclass(frozen=True)
class Contributor:
    """A registered contributor in the registration variant."""
    identity: str
    label: str
    score: int
    registered_at: int
    root_version: int
