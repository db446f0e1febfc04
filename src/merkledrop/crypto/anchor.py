"""On-chain publication — sends a tree root to the distributor contract.

The off-chain builder's only output that goes on-chain is the root and
the epoch parameters. This module encodes the distributor's

    createEpoch(bytes32 root, uint256 totalAmount, address asset,
                uint256 startTime, uint256 endTime)

call and, when given RPC credentials, signs and sends it. The funding
transfer must already have landed: the contract refuses to create an
under-funded epoch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from eth_abi import encode
from eth_utils import encode_hex, function_signature_to_4byte_selector

from merkledrop.crypto.leaf import normalize_identity
from merkledrop.crypto.merkle import HASH_SIZE

logger = logging.getLogger(__name__)

CREATE_EPOCH_SIGNATURE = "createEpoch(bytes32,uint256,address,uint256,uint256)"


@dataclass(frozen=True)
class PublishRecord:
    """A record of a confirmed createEpoch transaction."""
    root: str
    total_amount: int
    tx_hash: str
    block_number: int
    chain_id: int
    timestamp_utc: str


def create_epoch_calldata(
    root: bytes,
    total_amount: int,
    asset: str,
    start_time: int,
    end_time: int = 0,
) -> bytes:
    """ABI-encoded calldata for createEpoch (selector + arguments)."""
    if len(root) != HASH_SIZE:
        raise ValueError(f"Root must be {HASH_SIZE} bytes, got {len(root)}")
    selector = function_signature_to_4byte_selector(CREATE_EPOCH_SIGNATURE)
    args = encode(
        ["bytes32", "uint256", "address", "uint256", "uint256"],
        [root, total_amount, normalize_identity(asset), start_time, end_time],
    )
    return selector + args


def publish_epoch(
    root: bytes,
    total_amount: int,
    asset: str,
    start_time: int,
    end_time: int,
    distributor_address: str,
    rpc_url: str,
    private_key: str,
    chain_id: int = 11155111,
    gas: int = 200_000,
    gas_price_gwei: str = "2",
) -> PublishRecord:
    """Sign and send createEpoch, then wait for one confirmation.

    Args:
        root: The 32-byte tree root.
        total_amount: Sum of all committed amounts, in base units.
        asset: ERC-20 token address already held by the distributor.
        start_time: Unix seconds when claims open.
        end_time: Unix seconds when claims close (0 = never).
        distributor_address: The distributor contract.
        rpc_url: Ethereum RPC endpoint URL.
        private_key: Hex-encoded key of an authorized operator.
        chain_id: Network chain ID (default: 11155111 = Sepolia).
        gas: Gas limit for the transaction.
        gas_price_gwei: Gas price in gwei.
    """
    from eth_account import Account
    from web3 import HTTPProvider, Web3

    w3 = Web3(HTTPProvider(rpc_url))
    acct = Account.from_key(private_key)

    tx = {
        "to": Web3.to_checksum_address(distributor_address),
        "value": 0,
        "gas": gas,
        "gasPrice": w3.to_wei(gas_price_gwei, "gwei"),
        "nonce": w3.eth.get_transaction_count(acct.address),
        "chainId": chain_id,
        "data": create_epoch_calldata(root, total_amount, asset, start_time, end_time),
    }

    signed = acct.sign_transaction(tx)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    logger.info("Sent createEpoch tx %s", tx_hash.hex())

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=300)
    if receipt.status != 1:
        raise RuntimeError(f"createEpoch reverted in tx {tx_hash.hex()}")
    logger.info("createEpoch confirmed in block %d", receipt.blockNumber)

    return PublishRecord(
        root=encode_hex(root),
        total_amount=total_amount,
        tx_hash=tx_hash.hex(),
        block_number=receipt.blockNumber,
        chain_id=chain_id,
        timestamp_utc=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
    )
