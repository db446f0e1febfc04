"""Entitlement tree builder — from a record set to a root and proofs.

The builder is deterministic: two runs over the same logical record set
produce a byte-identical root and byte-identical proofs regardless of
input order.

Steps:
1. Reject duplicates (by normalized identity).
2. Sort records by identity.
3. Hash each record into its leaf.
4. Build the tree (sorted-pair parents, unpaired nodes promoted).
5. Derive a proof per identity and self-check it against the root.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Protocol, Sequence, TypeVar

from eth_utils import encode_hex

from merkledrop.crypto.leaf import normalize_identity
from merkledrop.crypto.merkle import MerkleProof, MerkleTree, verify_proof

logger = logging.getLogger(__name__)


class TreeBuildError(ValueError):
    """Base class for tree construction failures."""


class EmptyTreeError(TreeBuildError):
    """Raised when no records are supplied."""


class DuplicateIdentityError(TreeBuildError):
    """Raised when two records share one identity."""


class ProofSelfCheckError(TreeBuildError):
    """Raised when an emitted proof fails to verify against the root."""


class LeafRecord(Protocol):
    @property
    def identity(self) -> str: ...

    def leaf(self) -> bytes: ...


R = TypeVar("R", bound=LeafRecord)


@dataclass(frozen=True)
class LeafEntry:
    """One committed record with its leaf and inclusion proof."""
    record: LeafRecord
    leaf: bytes
    proof: MerkleProof

    @property
    def identity(self) -> str:
        return self.record.identity


class EntitlementTree:
    """A built, self-checked tree over a set of entitlement records.

    Usage:
        tree = EntitlementTree.build([
            Entitlement("0xaaa...", 100),
            Entitlement("0xbbb...", 200),
        ])
        tree.root          # 32-byte digest for create_epoch
        tree.proof_for("0xaaa...")
    """

    def __init__(self, tree: MerkleTree, entries: Sequence[LeafEntry]) -> None:
        self._tree = tree
        self._entries = tuple(entries)
        self._by_identity = {entry.identity: entry for entry in self._entries}

    @classmethod
    def build(cls, records: Iterable[R]) -> "EntitlementTree":
        snapshot = list(records)
        if not snapshot:
            raise EmptyTreeError("Cannot build a tree over an empty record set")

        seen: set[str] = set()
        for record in snapshot:
            if record.identity in seen:
                raise DuplicateIdentityError(f"Duplicate identity: {record.identity}")
            seen.add(record.identity)

        ordered = sorted(snapshot, key=lambda r: r.identity)
        tree = MerkleTree()
        leaves = [record.leaf() for record in ordered]
        for leaf in leaves:
            tree.add_leaf(leaf)
        root = tree.compute_root()

        entries: list[LeafEntry] = []
        for record, leaf in zip(ordered, leaves):
            proof = tree.inclusion_proof(leaf)
            if proof is None or not verify_proof(leaf, proof.siblings, root):
                raise ProofSelfCheckError(
                    f"Proof for {record.identity} does not verify against {encode_hex(root)}"
                )
            entries.append(LeafEntry(record=record, leaf=leaf, proof=proof))

        logger.info(
            "Built entitlement tree: %d leaves, depth %d, root %s",
            len(entries), tree.depth, encode_hex(root),
        )
        return cls(tree, entries)

    @property
    def root(self) -> bytes:
        return self._tree.compute_root()

    @property
    def depth(self) -> int:
        return self._tree.depth

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LeafEntry]:
        return iter(self._entries)

    def __contains__(self, identity: object) -> bool:
        try:
            return normalize_identity(identity) in self._by_identity  # type: ignore[arg-type]
        except ValueError:
            return False

    def entry_for(self, identity: str) -> LeafEntry:
        try:
            entry = self._by_identity.get(normalize_identity(identity))
        except ValueError as exc:
            raise KeyError(f"Identity not in tree: {identity}") from exc
        if entry is None:
            raise KeyError(f"Identity not in tree: {identity}")
        return entry

    def proof_for(self, identity: str) -> tuple[bytes, ...]:
        return self.entry_for(identity).proof.siblings

    def render(self) -> str:
        return self._tree.render()
