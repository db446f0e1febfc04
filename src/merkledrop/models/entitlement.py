"""Entitlement records — the inputs committed into a Merkle tree.

Two variants exist:
- Entitlement: the right to withdraw ``amount`` base units of a pooled
  asset from one distribution epoch.
- Registration: the right to register as a contributor, carrying a
  display label (e.g. a GitHub handle) and an activity score.

Both are immutable once constructed. The identity is normalized on
construction so that two spellings of one address are the same record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from merkledrop.crypto.leaf import (
    UINT256_MAX,
    entitlement_leaf,
    normalize_identity,
    registration_leaf,
)


def _check_uint(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if value <= 0 or value > UINT256_MAX:
        raise ValueError(f"{name} must be in [1, 2**256), got {value}")


@dataclass(frozen=True)
class Entitlement:
    """A claimable amount for one identity.

    ``label`` is presentation metadata only (proof file naming); it is
    not part of the leaf.
    """
    identity: str
    amount: int
    label: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "identity", normalize_identity(self.identity))
        _check_uint("amount", self.amount)

    def leaf(self) -> bytes:
        return entitlement_leaf(self.identity, self.amount)


@dataclass(frozen=True)
class Registration:
    """A registration right: identity, label and score are all committed."""
    identity: str
    label: str
    score: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "identity", normalize_identity(self.identity))
        if not isinstance(self.label, str) or not self.label:
            raise ValueError("label must be a non-empty string")
        _check_uint("score", self.score)

    def leaf(self) -> bytes:
        return registration_leaf(self.identity, self.label, self.score)
