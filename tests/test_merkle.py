"""Tests for the Merkle tree — proves sorted-pair hashing and odd-node promotion."""

import pytest
from eth_utils import keccak

from merkledrop.crypto.merkle import (
    MerkleTree,
    hash_pair,
    process_proof,
    verify_proof,
)


def _leaf(tag: str) -> bytes:
    return keccak(text=tag)


def _tree(*tags: str) -> MerkleTree:
    tree = MerkleTree()
    for tag in tags:
        tree.add_leaf(_leaf(tag))
    tree.compute_root()
    return tree


class TestHashPair:
    def test_commutative(self) -> None:
        a, b = _leaf("a"), _leaf("b")
        assert hash_pair(a, b) == hash_pair(b, a)

    def test_smaller_first(self) -> None:
        a, b = sorted([_leaf("a"), _leaf("b")])
        assert hash_pair(b, a) == keccak(a + b)


class TestMerkleTree:
    def test_empty_tree_rejected(self) -> None:
        with pytest.raises(ValueError):
            MerkleTree().compute_root()

    def test_single_leaf(self) -> None:
        tree = _tree("a")
        assert tree.compute_root() == _leaf("a")
        assert tree.depth == 0
        assert tree.inclusion_proof(_leaf("a")).siblings == ()

    def test_two_leaves(self) -> None:
        tree = _tree("a", "b")
        assert tree.compute_root() == hash_pair(_leaf("a"), _leaf("b"))
        assert tree.inclusion_proof(_leaf("a")).siblings == (_leaf("b"),)

    def test_odd_leaf_promoted(self) -> None:
        """Three leaves: the third rises unchanged and pairs one level up."""
        tree = _tree("a", "b", "c")
        ab = hash_pair(_leaf("a"), _leaf("b"))
        assert tree.compute_root() == hash_pair(ab, _leaf("c"))
        assert tree.inclusion_proof(_leaf("c")).siblings == (ab,)
        assert tree.inclusion_proof(_leaf("a")).siblings == (_leaf("b"), _leaf("c"))
        assert tree.depth == 2

    def test_five_leaves_promoted_twice(self) -> None:
        tree = _tree("a", "b", "c", "d", "e")
        proof = tree.inclusion_proof(_leaf("e"))
        assert len(proof.siblings) == 1
        assert proof.verify()

    def test_every_proof_verifies(self) -> None:
        tags = [f"leaf-{i}" for i in range(11)]
        tree = _tree(*tags)
        root = tree.compute_root()
        for tag in tags:
            proof = tree.inclusion_proof(_leaf(tag))
            assert verify_proof(_leaf(tag), proof.siblings, root)

    def test_proof_length_bounded_by_depth(self) -> None:
        tags = [f"leaf-{i}" for i in range(9)]
        tree = _tree(*tags)
        for tag in tags:
            assert len(tree.inclusion_proof(_leaf(tag)).siblings) <= tree.depth

    def test_unknown_leaf_has_no_proof(self) -> None:
        assert _tree("a", "b").inclusion_proof(_leaf("z")) is None

    def test_duplicate_leaf_rejected(self) -> None:
        tree = MerkleTree()
        tree.add_leaf(_leaf("a"))
        with pytest.raises(ValueError, match="Duplicate"):
            tree.add_leaf(_leaf("a"))

    def test_wrong_size_leaf_rejected(self) -> None:
        with pytest.raises(ValueError):
            MerkleTree().add_leaf(b"short")

    def test_cannot_add_after_compute(self) -> None:
        tree = _tree("a")
        with pytest.raises(RuntimeError):
            tree.add_leaf(_leaf("b"))

    def test_proof_requires_compute(self) -> None:
        tree = MerkleTree()
        tree.add_leaf(_leaf("a"))
        with pytest.raises(RuntimeError):
            tree.inclusion_proof(_leaf("a"))

    def test_levels_and_render(self) -> None:
        tree = _tree("a", "b", "c")
        assert [len(level) for level in tree.levels] == [3, 2, 1]
        text = tree.render()
        assert text.startswith("Level 2 (1 nodes)")
        assert "Level 0 (3 nodes)" in text


class TestVerifyProof:
    def test_tampered_leaf_fails(self) -> None:
        tree = _tree("a", "b", "c", "d")
        proof = tree.inclusion_proof(_leaf("a"))
        assert not verify_proof(_leaf("x"), proof.siblings, proof.root)

    def test_tampered_sibling_fails(self) -> None:
        tree = _tree("a", "b", "c", "d")
        proof = tree.inclusion_proof(_leaf("a"))
        forged = (_leaf("x"),) + proof.siblings[1:]
        assert not verify_proof(proof.leaf, forged, proof.root)

    def test_wrong_root_fails(self) -> None:
        proof = _tree("a", "b").inclusion_proof(_leaf("a"))
        assert not verify_proof(proof.leaf, proof.siblings, _leaf("root"))

    def test_malformed_sibling_never_verifies(self) -> None:
        proof = _tree("a", "b").inclusion_proof(_leaf("a"))
        assert not verify_proof(proof.leaf, [b"\x00" * 31], proof.root)

    def test_process_proof_rejects_malformed(self) -> None:
        with pytest.raises(ValueError):
            process_proof(_leaf("a"), [b"\x00"])

    def test_hex_siblings(self) -> None:
        proof = _tree("a", "b").inclusion_proof(_leaf("a"))
        assert proof.hex_siblings() == ["0x" + _leaf("b").hex()]
