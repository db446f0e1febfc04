"""Merkle tree over Keccak-256 leaves with sorted-pair hashing.

Construction rules (shared by the builder and the verifier):

1. Parent = keccak256(min(left, right) ++ max(left, right)). Sorting the
   pair removes any left/right position from the proof.
2. An unpaired trailing node at any level is promoted to the next level
   unchanged; it contributes no sibling to proofs at that level.
3. A single-leaf tree has root == leaf and an empty proof.

Leaf ordering is the caller's responsibility. The entitlement builder
sorts records by identity before adding them, so the tree itself never
reorders its input.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from eth_utils import encode_hex, keccak

HASH_SIZE = 32


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf."""
    leaf: bytes
    index: int
    siblings: tuple[bytes, ...]
    root: bytes

    def hex_siblings(self) -> list[str]:
        return [encode_hex(s) for s in self.siblings]

    def verify(self) -> bool:
        return verify_proof(self.leaf, self.siblings, self.root)


class MerkleTree:
    """A binary Merkle tree with sorted-pair parents and odd-node promotion.

    Usage:
        tree = MerkleTree()
        tree.add_leaf(leaf_a)
        tree.add_leaf(leaf_b)
        root = tree.compute_root()
        proof = tree.inclusion_proof(leaf_a)
    """

    def __init__(self) -> None:
        self._leaves: list[bytes] = []
        self._positions: dict[bytes, int] = {}
        self._levels: list[list[bytes]] = []
        self._computed = False

    def add_leaf(self, leaf: bytes) -> None:
        """Add a 32-byte leaf digest. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        if len(leaf) != HASH_SIZE:
            raise ValueError(f"Leaf must be {HASH_SIZE} bytes, got {len(leaf)}")
        if leaf in self._positions:
            raise ValueError(f"Duplicate leaf: {encode_hex(leaf)}")
        self._positions[leaf] = len(self._leaves)
        self._leaves.append(bytes(leaf))

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    @property
    def depth(self) -> int:
        """Number of hashing levels above the leaves (0 for a single leaf)."""
        self._require_computed()
        return len(self._levels) - 1

    @property
    def levels(self) -> list[list[bytes]]:
        self._require_computed()
        return [list(level) for level in self._levels]

    def compute_root(self) -> bytes:
        """Build every level bottom-up and return the root.

        An empty tree has no meaningful root and is rejected.
        """
        if self._computed:
            return self._levels[-1][0]
        if not self._leaves:
            raise ValueError("Cannot compute the root of an empty tree")

        self._levels = [list(self._leaves)]
        current = self._levels[0]
        while len(current) > 1:
            parents: list[bytes] = []
            for i in range(0, len(current) - 1, 2):
                parents.append(hash_pair(current[i], current[i + 1]))
            if len(current) % 2 == 1:
                parents.append(current[-1])  # promoted
            self._levels.append(parents)
            current = parents

        self._computed = True
        return current[0]

    def inclusion_proof(self, leaf: bytes) -> MerkleProof | None:
        """Generate an inclusion proof for a leaf.

        Returns None if the leaf is not in the tree.
        Must call compute_root first.
        """
        self._require_computed()
        index = self._positions.get(leaf)
        if index is None:
            return None

        siblings: list[bytes] = []
        position = index
        for level in self._levels[:-1]:
            sibling = position ^ 1
            if sibling < len(level):
                siblings.append(level[sibling])
            position //= 2

        return MerkleProof(
            leaf=leaf,
            index=index,
            siblings=tuple(siblings),
            root=self._levels[-1][0],
        )

    def render(self) -> str:
        """Text dump of every level, root first."""
        self._require_computed()
        lines: list[str] = []
        for height, level in reversed(list(enumerate(self._levels))):
            lines.append(f"Level {height} ({len(level)} nodes)")
            lines.extend(f"  [{i}] {encode_hex(node)}" for i, node in enumerate(level))
        return "\n".join(lines) + "\n"

    def _require_computed(self) -> None:
        if not self._computed:
            raise RuntimeError("Must call compute_root before reading the tree")


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two nodes in sorted order."""
    if a <= b:
        return keccak(a + b)
    return keccak(b + a)


def process_proof(leaf: bytes, proof: Sequence[bytes]) -> bytes:
    """Fold a proof left-to-right and return the implied root."""
    computed = leaf
    for sibling in proof:
        if len(sibling) != HASH_SIZE:
            raise ValueError(f"Proof element must be {HASH_SIZE} bytes, got {len(sibling)}")
        computed = hash_pair(computed, sibling)
    return computed


def verify_proof(leaf: bytes, proof: Sequence[bytes], root: bytes) -> bool:
    """True when ``proof`` links ``leaf`` to ``root``.

    Malformed proof elements never verify.
    """
    try:
        return process_proof(leaf, proof) == root
    except ValueError:
        return False
