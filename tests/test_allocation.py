"""Tests for allocation strategies — proves shares never exceed the pool."""

import json
from decimal import Decimal

import pytest

from merkledrop.config import DistributionConfig
from merkledrop.models.entitlement import Registration
from merkledrop.distribution.allocation import (
    AllocationError,
    ContributorRecord,
    Distribution,
    allocate,
    eligible_contributors,
    load_contributors,
    registrations,
)

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CHARLIE = "0x" + "c3" * 20
USDC = "0x" + "c0" * 20


def _config(total: int = 1000, strategy: str = "equal", weights=None) -> DistributionConfig:
    return DistributionConfig(
        epoch_id=1,
        asset=USDC,
        asset_symbol="USDC",
        decimals=6,
        total_yield=total,
        strategy=strategy,
        custom_weights=weights or {},
    )


def _contributors() -> list[ContributorRecord]:
    return [
        ContributorRecord("alice", ALICE, 30, True),
        ContributorRecord("bob", BOB, 10, True),
        ContributorRecord("charlie", CHARLIE, 60, True),
    ]


def _amounts(distribution: Distribution) -> dict[str, int]:
    return {a.label: a.amount for a in distribution.allocations}


class TestEligibility:
    def test_filters_ineligible_and_walletless(self) -> None:
        records = _contributors() + [
            ContributorRecord("dan", None, 99, True),
            ContributorRecord("erin", "0x" + "e5" * 20, 99, False),
            ContributorRecord("frank", "not-a-wallet", 99, True),
        ]
        assert [c.label for c in eligible_contributors(records)] == ["alice", "bob", "charlie"]

    def test_wallets_normalized(self) -> None:
        records = [ContributorRecord("alice", "0x" + "A1" * 20, 1, True)]
        assert eligible_contributors(records)[0].wallet == ALICE


class TestStrategies:
    def test_equal_rounds_down(self) -> None:
        distribution = allocate(_config(1000), _contributors())
        assert set(_amounts(distribution).values()) == {333}
        assert distribution.total_allocated == 999

    def test_custom_weights(self) -> None:
        weights = {"alice": Decimal("2"), "bob": Decimal("1")}
        distribution = allocate(_config(300, "custom", weights), _contributors())
        assert _amounts(distribution) == {"alice": 200, "bob": 100}

    def test_proportional_to_score(self) -> None:
        distribution = allocate(_config(1000, "proportional"), _contributors())
        assert _amounts(distribution) == {"alice": 300, "bob": 100, "charlie": 600}

    def test_never_exceeds_pool(self) -> None:
        weights = {"alice": Decimal("1"), "bob": Decimal("1"), "charlie": Decimal("1")}
        distribution = allocate(_config(1001, "custom", weights), _contributors())
        assert distribution.total_allocated <= 1001

    def test_no_eligible_contributors(self) -> None:
        with pytest.raises(AllocationError):
            allocate(_config(), [ContributorRecord("dan", None, 1, True)])

    def test_all_zero_weights(self) -> None:
        with pytest.raises(AllocationError, match="Total weight is 0"):
            allocate(_config(100, "custom", {"zed": Decimal("1")}), _contributors())

    def test_pool_too_small(self) -> None:
        with pytest.raises(AllocationError):
            allocate(_config(2), _contributors())

    def test_shared_wallet_rejected(self) -> None:
        records = _contributors() + [ContributorRecord("alice-alt", ALICE, 5, True)]
        with pytest.raises(AllocationError, match="shared"):
            allocate(_config(), records)


class TestDistributionFiles:
    def test_load_contributors(self, tmp_path) -> None:
        path = tmp_path / "contributors.json"
        path.write_text(json.dumps({"contributors": [
            {"github": "alice", "wallet": ALICE, "totalScore": 30, "eligible": True},
            {"github": "bob", "wallet": None, "totalScore": 10, "eligible": True},
        ]}), encoding="utf-8")
        records = load_contributors(path)
        assert records[0] == ContributorRecord("alice", ALICE, 30, True)
        assert records[1].wallet is None

    def test_missing_contributors_file(self, tmp_path) -> None:
        with pytest.raises(AllocationError):
            load_contributors(tmp_path / "missing.json")

    def test_row_without_label_rejected(self, tmp_path) -> None:
        path = tmp_path / "contributors.json"
        path.write_text(json.dumps({"contributors": [
            {"wallet": ALICE, "totalScore": 30, "eligible": True},
        ]}), encoding="utf-8")
        with pytest.raises(AllocationError, match="no github label"):
            load_contributors(path)

    def test_save_and_load(self, tmp_path) -> None:
        distribution = allocate(_config(1000, "proportional"), _contributors())
        path = distribution.save(tmp_path)
        assert path.name == "epoch-1.json"
        assert Distribution.load(path) == distribution

    def test_entitlements_carry_labels(self) -> None:
        distribution = allocate(_config(), _contributors())
        entitlements = distribution.entitlements()
        assert {e.label for e in entitlements} == {"alice", "bob", "charlie"}
        assert sum(e.amount for e in entitlements) == distribution.total_allocated

    def test_stats(self) -> None:
        stats = allocate(_config(1000, "proportional"), _contributors()).stats()
        assert stats["totalContributors"] == 3
        assert stats["minAllocation"] == "100"
        assert stats["maxAllocation"] == "600"


class TestRegistrations:
    def test_eligible_scored_contributors(self) -> None:
        leaves = registrations(_contributors())
        assert leaves == [
            Registration(ALICE, "alice", 30),
            Registration(BOB, "bob", 10),
            Registration(CHARLIE, "charlie", 60),
        ]

    def test_zero_score_and_ineligible_skipped(self) -> None:
        records = _contributors() + [
            ContributorRecord("dan", "0x" + "d4" * 20, 0, True),
            ContributorRecord("erin", "0x" + "e5" * 20, 50, False),
        ]
        assert [r.label for r in registrations(records)] == ["alice", "bob", "charlie"]

    def test_nothing_to_register(self) -> None:
        with pytest.raises(AllocationError, match="positive score"):
            registrations([ContributorRecord("dan", "0x" + "d4" * 20, 0, True)])
