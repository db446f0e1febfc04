"""Cryptographic primitives — leaf encoding, Merkle trees, proof verification."""

from merkledrop.crypto.leaf import (
    entitlement_leaf,
    normalize_identity,
    registration_leaf,
)
from merkledrop.crypto.merkle import (
    MerkleProof,
    MerkleTree,
    hash_pair,
    process_proof,
    verify_proof,
)

__all__ = [
    "MerkleProof",
    "MerkleTree",
    "entitlement_leaf",
    "hash_pair",
    "normalize_identity",
    "process_proof",
    "registration_leaf",
    "verify_proof",
]
