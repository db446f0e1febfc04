"""Asset vault — custody balances backing the entitlement ledger.

The vault stands in for token balances held by the distributor
contract. The funding source deposits into custody strictly before an
epoch is created; the ledger only reads the custody balance and moves
value out of it on claims and emergency withdrawals.

Recipients may register a receive hook. Hooks run during the transfer,
after the ledger has already committed its own effects, which is the
point where a hostile recipient could try to call back into the ledger.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Callable, Dict

from merkledrop.crypto.leaf import normalize_identity
from merkledrop.ledger.errors import InsufficientFunding, InvalidAmount

ReceiveHook = Callable[[str, int], None]


class AssetVault:
    """Per-asset custody balance plus recipient balances.

    Usage:
        vault = AssetVault()
        vault.deposit(USDC, 500)
        vault.custody_balance(USDC)   # 500
        vault.transfer(USDC, "0xalice...", 100)
        vault.balance_of(USDC, "0xalice...")  # 100
    """

    def __init__(self) -> None:
        self._custody: Dict[str, int] = defaultdict(int)
        self._balances: Dict[tuple[str, str], int] = defaultdict(int)
        self._hooks: Dict[str, ReceiveHook] = {}

    def deposit(self, asset: str, amount: int) -> None:
        """Credit custody. Called by the funding source, never by the ledger."""
        if amount <= 0:
            raise InvalidAmount("Deposit amount must be positive")
        self._custody[normalize_identity(asset)] += amount

    def custody_balance(self, asset: str) -> int:
        return self._custody.get(normalize_identity(asset), 0)

    def balance_of(self, asset: str, holder: str) -> int:
        return self._balances.get((normalize_identity(asset), normalize_identity(holder)), 0)

    def register_receive_hook(self, holder: str, hook: ReceiveHook) -> None:
        self._hooks[normalize_identity(holder)] = hook

    def transfer(self, asset: str, to: str, amount: int) -> None:
        """Move ``amount`` from custody to ``to`` and run its receive hook."""
        asset = normalize_identity(asset)
        to = normalize_identity(to)
        self.move_out(asset, to, amount)
        self.run_receive_hook(asset, to, amount)

    def run_receive_hook(self, asset: str, to: str, amount: int) -> None:
        hook = self._hooks.get(to)
        if hook is not None:
            hook(asset, amount)

    def move_out(self, asset: str, to: str, amount: int) -> None:
        """Balance bookkeeping only, no hooks."""
        if amount <= 0:
            raise InvalidAmount("Transfer amount must be positive")
        if self._custody.get(asset, 0) < amount:
            raise InsufficientFunding(
                f"Custody holds {self._custody.get(asset, 0)} of {asset}, need {amount}"
            )
        self._custody[asset] -= amount
        self._balances[(asset, to)] += amount

    def move_back(self, asset: str, holder: str, amount: int) -> None:
        """Reverse a move_out. Used only to roll back an aborted operation."""
        self._balances[(asset, holder)] -= amount
        self._custody[asset] += amount
