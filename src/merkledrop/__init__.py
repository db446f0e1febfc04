"""merkledrop — Merkle-proof entitlement distribution.

Off-chain: allocate a pool, commit the allocations into a Merkle tree,
export per-claimant proofs. On the ledger side: publish roots as funded
epochs and redeem proofs exactly once.
"""

__version__ = "0.1.0"
