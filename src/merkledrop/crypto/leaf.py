"""Leaf encoding — canonical byte layout of one entitlement record.

The layout mirrors Solidity's ``abi.encodePacked`` so that the on-chain
verifier recomputes exactly the same digest:

    amount leaf:        keccak256(address ++ uint256 amount)
    registration leaf:  keccak256(address ++ string label ++ uint256 score)

Addresses are packed as 20 raw bytes, integers as 32-byte big-endian
words, strings as their raw UTF-8 bytes (no length prefix).
"""

from __future__ import annotations

from eth_abi.packed import encode_packed
from eth_utils import is_address, is_checksum_address, keccak

UINT256_MAX = 2**256 - 1


def normalize_identity(identity: str) -> str:
    """Return the canonical (lowercase, 0x-prefixed) form of an address.

    Raises ValueError for anything that is not a 20-byte hex address, and
    for mixed-case input whose EIP-55 checksum does not match.
    """
    if not isinstance(identity, str):
        raise ValueError(f"Identity must be a string, got {type(identity).__name__}")
    candidate = identity.strip()
    if not candidate.startswith("0x"):
        candidate = "0x" + candidate
    if not is_address(candidate):
        raise ValueError(f"Invalid identity address: {identity}")
    body = candidate[2:]
    if body != body.lower() and body != body.upper() and not is_checksum_address(candidate):
        raise ValueError(f"Bad checksum in mixed-case address: {identity}")
    return candidate.lower()


def encode_entitlement(identity: str, amount: int) -> bytes:
    """Packed encoding of an (identity, amount) entitlement."""
    return encode_packed(["address", "uint256"], [identity, amount])


def encode_registration(identity: str, label: str, score: int) -> bytes:
    """Packed encoding of an (identity, label, score) registration."""
    return encode_packed(["address", "string", "uint256"], [identity, label, score])


def entitlement_leaf(identity: str, amount: int) -> bytes:
    return keccak(encode_entitlement(identity, amount))


def registration_leaf(identity: str, label: str, score: int) -> bytes:
    return keccak(encode_registration(identity, label, score))
