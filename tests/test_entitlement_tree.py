"""Tests for the entitlement tree builder — determinism, self-checked proofs."""

import pytest

from merkledrop.crypto.entitlement_tree import (
    DuplicateIdentityError,
    EmptyTreeError,
    EntitlementTree,
)
from merkledrop.crypto.leaf import entitlement_leaf
from merkledrop.crypto.merkle import verify_proof
from merkledrop.models.entitlement import Entitlement, Registration

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b2" * 20
CHARLIE = "0x" + "c3" * 20
DAVID = "0x" + "d4" * 20


def _records() -> list[Entitlement]:
    return [
        Entitlement(ALICE, 100, label="alice"),
        Entitlement(BOB, 200, label="bob"),
        Entitlement(CHARLIE, 150, label="charlie"),
        Entitlement(DAVID, 50, label="david"),
    ]


class TestBuild:
    def test_every_proof_verifies(self) -> None:
        tree = EntitlementTree.build(_records())
        for record in _records():
            assert verify_proof(record.leaf(), tree.proof_for(record.identity), tree.root)

    def test_input_order_does_not_matter(self) -> None:
        forward = EntitlementTree.build(_records())
        backward = EntitlementTree.build(reversed(_records()))
        assert forward.root == backward.root
        for record in _records():
            assert forward.proof_for(record.identity) == backward.proof_for(record.identity)

    def test_single_record_root_is_leaf(self) -> None:
        tree = EntitlementTree.build([Entitlement(ALICE, 100)])
        assert tree.root == entitlement_leaf(ALICE, 100)
        assert tree.proof_for(ALICE) == ()

    def test_odd_record_count(self) -> None:
        tree = EntitlementTree.build(_records()[:3])
        assert len(tree) == 3
        for entry in tree:
            assert entry.proof.verify()

    def test_entries_sorted_by_identity(self) -> None:
        tree = EntitlementTree.build(reversed(_records()))
        assert [e.identity for e in tree] == sorted([ALICE, BOB, CHARLIE, DAVID])

    def test_label_not_committed(self) -> None:
        labelled = EntitlementTree.build([Entitlement(ALICE, 100, label="alice")])
        bare = EntitlementTree.build([Entitlement(ALICE, 100)])
        assert labelled.root == bare.root

    def test_registration_records(self) -> None:
        records = [Registration(ALICE, "alice", 234), Registration(BOB, "bob", 87)]
        tree = EntitlementTree.build(records)
        for record in records:
            assert verify_proof(record.leaf(), tree.proof_for(record.identity), tree.root)

    def test_empty_rejected(self) -> None:
        with pytest.raises(EmptyTreeError):
            EntitlementTree.build([])

    def test_duplicate_identity_rejected(self) -> None:
        """Two spellings of one address are the same identity."""
        with pytest.raises(DuplicateIdentityError):
            EntitlementTree.build([
                Entitlement(ALICE, 100),
                Entitlement("0x" + "A1" * 20, 200),
            ])

    def test_build_errors_are_value_errors(self) -> None:
        with pytest.raises(ValueError):
            EntitlementTree.build([])


class TestLookup:
    def test_contains_is_case_insensitive(self) -> None:
        tree = EntitlementTree.build(_records())
        assert "0x" + "A1" * 20 in tree
        assert "0x" + "ee" * 20 not in tree

    def test_entry_for_unknown_raises(self) -> None:
        tree = EntitlementTree.build(_records())
        with pytest.raises(KeyError):
            tree.entry_for("0x" + "ee" * 20)

    def test_lookup_accepts_unprefixed_identity(self) -> None:
        tree = EntitlementTree.build(_records())
        assert ALICE[2:] in tree
        assert f"  {ALICE[2:].upper()} " in tree
        assert tree.entry_for(ALICE[2:]).identity == ALICE
        assert tree.proof_for(ALICE[2:]) == tree.proof_for(ALICE)

    def test_malformed_identity_is_not_found(self) -> None:
        tree = EntitlementTree.build(_records())
        assert "not-an-address" not in tree
        assert 42 not in tree
        with pytest.raises(KeyError):
            tree.entry_for("not-an-address")

    def test_entry_keeps_record(self) -> None:
        entry = EntitlementTree.build(_records()).entry_for(BOB)
        assert entry.record.amount == 200
        assert entry.leaf == entitlement_leaf(BOB, 200)

    def test_forged_amount_fails(self) -> None:
        tree = EntitlementTree.build(_records())
        forged = entitlement_leaf(ALICE, 1000)
        assert not verify_proof(forged, tree.proof_for(ALICE), tree.root)

    def test_borrowed_proof_fails(self) -> None:
        """Bob cannot claim Alice's amount with Alice's proof."""
        tree = EntitlementTree.build(_records())
        assert not verify_proof(entitlement_leaf(BOB, 100), tree.proof_for(ALICE), tree.root)

    def test_depth_and_render(self) -> None:
        tree = EntitlementTree.build(_records())
        assert tree.depth == 2
        assert tree.render().startswith("Level 2 (1 nodes)")
