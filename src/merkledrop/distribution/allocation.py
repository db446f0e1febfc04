"""Allocation — splits an epoch's pooled yield across eligible contributors.

Strategies:
- equal:        every eligible contributor gets total // n.
- custom:       shares proportional to per-label weights from the config;
                contributors without a positive weight get nothing.
- proportional: shares proportional to each contributor's activity score.

All arithmetic is exact (integers and fractions) and rounds down, so
the sum of allocations never exceeds the pool. Rounding dust stays
unallocated. Zero allocations are dropped, since a zero leaf could
never be claimed.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from merkledrop.config import DistributionConfig
from merkledrop.crypto.leaf import normalize_identity
from merkledrop.models.entitlement import Entitlement, Registration

logger = logging.getLogger(__name__)


class AllocationError(ValueError):
    """Raised when no valid allocation can be produced."""


@dataclass(frozen=True)
class ContributorRecord:
    """One row of the activity tracker's output."""
    label: str
    wallet: str | None
    score: int
    eligible: bool


@dataclass(frozen=True)
class Allocation:
    label: str
    identity: str
    amount: int


def load_contributors(path: Path) -> List[ContributorRecord]:
    """Read ``{"contributors": [{github, wallet, totalScore, eligible}, ...]}``."""
    if not path.exists():
        raise AllocationError(f"Contributors file not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    rows = data.get("contributors", [])
    for index, row in enumerate(rows):
        if not row.get("github"):
            raise AllocationError(f"Contributor #{index} in {path} has no github label")
    return [
        ContributorRecord(
            label=str(row["github"]),
            wallet=row.get("wallet") or None,
            score=int(row.get("totalScore", 0)),
            eligible=bool(row.get("eligible", False)),
        )
        for row in rows
    ]


def eligible_contributors(records: Iterable[ContributorRecord]) -> List[ContributorRecord]:
    """Keep eligible records with a valid wallet; wallets come back normalized."""
    kept: List[ContributorRecord] = []
    for record in records:
        if not record.eligible or not record.wallet:
            continue
        try:
            wallet = normalize_identity(record.wallet)
        except ValueError:
            logger.warning("Skipping %s: invalid wallet %r", record.label, record.wallet)
            continue
        kept.append(ContributorRecord(record.label, wallet, record.score, True))
    return kept


def registrations(records: Iterable[ContributorRecord]) -> List[Registration]:
    """Registration leaves for eligible contributors with a positive score."""
    leaves: List[Registration] = []
    for record in eligible_contributors(records):
        if record.score <= 0:
            logger.warning("Skipping %s: score %d", record.label, record.score)
            continue
        leaves.append(Registration(record.wallet, record.label, record.score))
    if not leaves:
        raise AllocationError("No eligible contributors with a positive score")
    return leaves


def _weighted(total: int, weights: Sequence[tuple[ContributorRecord, Fraction]]) -> List[tuple[ContributorRecord, int]]:
    positive = [(c, w) for c, w in weights if w > 0]
    total_weight = sum((w for _, w in positive), Fraction(0))
    if total_weight == 0:
        raise AllocationError("Total weight is 0. No contributors have positive weights.")
    return [(c, math.floor(Fraction(total) * w / total_weight)) for c, w in positive]


@dataclass(frozen=True)
class Distribution:
    """The allocation result for one epoch."""
    config: DistributionConfig
    allocations: tuple[Allocation, ...]

    @property
    def total_allocated(self) -> int:
        return sum(a.amount for a in self.allocations)

    def stats(self) -> Dict[str, str | int]:
        amounts = sorted(a.amount for a in self.allocations)
        return {
            "totalContributors": len(amounts),
            "avgAllocation": str(self.total_allocated // len(amounts)),
            "minAllocation": str(amounts[0]),
            "maxAllocation": str(amounts[-1]),
        }

    def entitlements(self) -> List[Entitlement]:
        return [Entitlement(a.identity, a.amount, label=a.label) for a in self.allocations]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "allocations": [
                {"github": a.label, "wallet": a.identity, "amount": str(a.amount)}
                for a in self.allocations
            ],
            "totalAllocated": str(self.total_allocated),
            "stats": self.stats(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Distribution":
        return cls(
            config=DistributionConfig.from_dict(data["config"]),
            allocations=tuple(
                Allocation(
                    label=str(row["github"]),
                    identity=normalize_identity(row["wallet"]),
                    amount=int(row["amount"]),
                )
                for row in data["allocations"]
            ),
        )

    def save(self, directory: Path) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"epoch-{self.config.epoch_id}.json"
        path.write_text(json.dumps(self.to_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Path) -> "Distribution":
        if not path.exists():
            raise AllocationError(f"Distribution file not found: {path}")
        return cls.from_dict(json.loads(path.read_text(encoding="utf-8")))


def allocate(config: DistributionConfig, contributors: Iterable[ContributorRecord]) -> Distribution:
    """Compute the per-contributor split of ``config.total_yield``."""
    eligible = eligible_contributors(contributors)
    if not eligible:
        raise AllocationError("No eligible contributors found with wallet addresses")

    wallets = [c.wallet for c in eligible]
    if len(set(wallets)) != len(wallets):
        dupes = sorted({w for w in wallets if wallets.count(w) > 1})
        raise AllocationError(f"Wallets shared by several contributors: {', '.join(dupes)}")

    total = config.total_yield
    if config.strategy == "equal":
        share = total // len(eligible)
        amounts = [(c, share) for c in eligible]
    elif config.strategy == "custom":
        weights = [(c, Fraction(config.custom_weights.get(c.label, 0))) for c in eligible]
        amounts = _weighted(total, weights)
    elif config.strategy == "proportional":
        amounts = _weighted(total, [(c, Fraction(max(c.score, 0))) for c in eligible])
    else:
        raise AllocationError(f"Unknown strategy: {config.strategy}")

    allocations = tuple(
        Allocation(label=c.label, identity=c.wallet, amount=amount)
        for c, amount in amounts
        if amount > 0
    )
    if not allocations:
        raise AllocationError(f"Pool of {total} is too small to give anyone a non-zero share")

    distribution = Distribution(config=config, allocations=allocations)
    logger.info(
        "Allocated %d of %d across %d contributors (%s)",
        distribution.total_allocated, total, len(allocations), config.strategy,
    )
    return distribution
