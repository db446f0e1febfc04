"""Tests for entitlement and epoch records."""

import pytest

from merkledrop.models.entitlement import Entitlement, Registration
from merkledrop.models.epoch import Epoch, EpochStatus

ALICE = "0x" + "a1" * 20
USDC = "0x" + "c0" * 20


def _epoch(**overrides) -> Epoch:
    fields = dict(
        epoch_id=1, root=b"\x01" * 32, total_amount=500, asset=USDC,
        start_time=1000, end_time=2000,
    )
    fields.update(overrides)
    return Epoch(**fields)


class TestEntitlement:
    def test_identity_normalized(self) -> None:
        assert Entitlement("0x" + "A1" * 20, 1).identity == ALICE

    def test_label_ignored_in_equality(self) -> None:
        assert Entitlement(ALICE, 1, label="a") == Entitlement(ALICE, 1, label="b")

    @pytest.mark.parametrize("amount", [0, -1, 2**256, True, "100"])
    def test_bad_amount_rejected(self, amount) -> None:
        with pytest.raises(ValueError):
            Entitlement(ALICE, amount)

    def test_max_amount_accepted(self) -> None:
        assert Entitlement(ALICE, 2**256 - 1).amount == 2**256 - 1


class TestRegistration:
    def test_empty_label_rejected(self) -> None:
        with pytest.raises(ValueError):
            Registration(ALICE, "", 1)

    def test_zero_score_rejected(self) -> None:
        with pytest.raises(ValueError):
            Registration(ALICE, "alice", 0)


class TestEpochStatus:
    def test_pending_before_start(self) -> None:
        assert _epoch().status_at(999) == EpochStatus.PENDING

    def test_active_inclusive_bounds(self) -> None:
        assert _epoch().status_at(1000) == EpochStatus.ACTIVE
        assert _epoch().status_at(2000) == EpochStatus.ACTIVE

    def test_expired_after_end(self) -> None:
        assert _epoch().status_at(2001) == EpochStatus.EXPIRED

    def test_open_ended_never_expires(self) -> None:
        assert _epoch(end_time=0).status_at(10**12) == EpochStatus.ACTIVE

    def test_cancelled_wins(self) -> None:
        assert _epoch(active=False).status_at(1500) == EpochStatus.CANCELLED
        assert not _epoch(active=False).is_claimable_at(1500)

    def test_remaining(self) -> None:
        assert _epoch(claimed_amount=120).remaining == 380
