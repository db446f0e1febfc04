"""Entitlement ledger — the authoritative state machine for distribution epochs.

The ledger publishes Merkle roots as time-boxed epochs, accepts claims
backed by inclusion proofs, and guarantees that every (epoch, identity)
pair is redeemed at most once.

Execution model:
- Every public mutation runs to completion under one lock. No two
  operations interleave their effects.
- Each mutation follows checks → effects → interactions. Claim records
  and claimed totals are written before any value leaves custody.
- A mutating call made while another is in flight (e.g. from a
  recipient's receive hook) is rejected with ReentrancyError.
- Any exception after effects began restores every effect of the
  operation, so a rejected call leaves no partial state behind. This
  applies to whole batches in claim_multiple.

Lifecycle (per epoch):
    created (active) → cancelled            terminal, admin-only
    created (active) → expired              implicit, now > end_time != 0
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Iterator, List, Optional, Sequence, Union

from eth_utils import decode_hex, encode_hex

from merkledrop.crypto.leaf import UINT256_MAX, entitlement_leaf, normalize_identity
from merkledrop.crypto.merkle import HASH_SIZE, verify_proof
from merkledrop.ledger.auth import Action, Authorizer, CallContext, require
from merkledrop.ledger.claims import ClaimTracker
from merkledrop.ledger.errors import (
    AlreadyClaimed,
    ArrayLengthMismatch,
    EpochExhausted,
    EpochExpired,
    EpochNotActive,
    EpochNotStarted,
    InsufficientFunding,
    InvalidAmount,
    InvalidEpochId,
    InvalidProof,
    InvalidRoot,
    InvalidSchedule,
    LedgerError,
    ReentrancyError,
)
from merkledrop.ledger.vault import AssetVault
from merkledrop.models.epoch import Epoch, EpochStatus
from merkledrop.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)

Digest = Union[bytes, str]

ZERO_ROOT = b"\x00" * HASH_SIZE


def to_digest(value: Digest) -> bytes:
    """Accept a 32-byte digest as raw bytes or 0x-prefixed hex."""
    if isinstance(value, str):
        try:
            value = decode_hex(value)
        except ValueError as exc:
            raise InvalidProof(f"Malformed hex digest: {value}") from exc
    elif not isinstance(value, (bytes, bytearray)):
        raise InvalidProof(f"Digest must be bytes or hex, got {type(value).__name__}")
    if len(value) != HASH_SIZE:
        raise InvalidProof(f"Digest must be {HASH_SIZE} bytes, got {len(value)}")
    return bytes(value)


def to_siblings(proof: Sequence[Digest]) -> list[bytes]:
    if isinstance(proof, (str, bytes, bytearray)):
        raise InvalidProof("Proof must be a sequence of digests")
    try:
        return [to_digest(p) for p in proof]
    except TypeError as exc:
        raise InvalidProof(f"Proof must be a sequence of digests, got {proof!r}") from exc


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer, got {amount!r}")
    if amount <= 0 or amount > UINT256_MAX:
        raise InvalidAmount(f"Amount must be in [1, 2**256), got {amount}")


class _Journal:
    """Undo log and pending events for one in-flight operation."""

    def __init__(self) -> None:
        self._undo: List[Callable[[], None]] = []
        self.events: List[tuple[EventKind, str, dict[str, Any]]] = []

    def on_rollback(self, undo: Callable[[], None]) -> None:
        self._undo.append(undo)

    def emit(self, kind: EventKind, actor_id: str, payload: dict[str, Any]) -> None:
        self.events.append((kind, actor_id, payload))

    def rollback(self) -> None:
        while self._undo:
            self._undo.pop()()


class EntitlementLedger:
    """Arena of epochs indexed by a monotonic id, plus the claim tracker.

    Usage:
        vault = AssetVault()
        ledger = EntitlementLedger(RoleAuthorizer([admin]), vault=vault)
        vault.deposit(USDC, 500)
        epoch_id = ledger.create_epoch(CallContext(admin), tree.root, 500, USDC, now, 0)
        ledger.claim(CallContext(alice), epoch_id, 100, tree.proof_for(alice))
        ledger.remaining(epoch_id)   # 400
    """

    def __init__(
        self,
        authorizer: Authorizer,
        vault: Optional[AssetVault] = None,
        clock: Optional[Callable[[], int]] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._authorizer = authorizer
        self._vault = vault if vault is not None else AssetVault()
        self._clock = clock or (lambda: int(time.time()))
        self._event_log = event_log
        self._epochs: List[Epoch] = []
        self._claims = ClaimTracker()
        self._lock = threading.RLock()
        self._in_flight = False

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def create_epoch(
        self,
        ctx: CallContext,
        root: Digest,
        total_amount: int,
        asset: str,
        start_time: int,
        end_time: int = 0,
    ) -> int:
        """Publish a funded epoch and return its id (ids start at 1).

        Custody must already hold total_amount on top of whatever the
        other claimable epochs on the same asset still owe.
        """
        with self._operation("create_epoch") as journal:
            require(self._authorizer, ctx, Action.CREATE_EPOCH)
            try:
                root_bytes = to_digest(root)
            except InvalidProof as exc:
                raise InvalidRoot(str(exc)) from exc
            if root_bytes == ZERO_ROOT:
                raise InvalidRoot("Root must be non-zero")
            _check_amount(total_amount)
            if start_time < 0 or end_time < 0:
                raise InvalidSchedule("Times must be non-negative")
            if end_time != 0 and end_time <= start_time:
                raise InvalidSchedule(
                    f"end_time ({end_time}) must be 0 or after start_time ({start_time})"
                )
            asset = normalize_identity(asset)

            now = self._clock()
            owed = self._outstanding(asset, now)
            held = self._vault.custody_balance(asset)
            if held < owed + total_amount:
                raise InsufficientFunding(
                    f"Custody holds {held} of {asset}; {owed} is owed to open epochs "
                    f"and {total_amount} is required for the new epoch"
                )

            epoch = Epoch(
                epoch_id=len(self._epochs) + 1,
                root=root_bytes,
                total_amount=total_amount,
                asset=asset,
                start_time=start_time,
                end_time=end_time,
            )
            self._epochs.append(epoch)
            journal.on_rollback(self._epochs.pop)
            journal.emit(EventKind.EPOCH_CREATED, ctx.caller, {
                "epoch_id": epoch.epoch_id,
                "root": encode_hex(root_bytes),
                "total_amount": str(total_amount),
                "asset": asset,
                "start_time": start_time,
                "end_time": end_time,
            })

        logger.info(
            "Created epoch %d: root %s, total %d of %s, window [%d, %s]",
            epoch.epoch_id, encode_hex(root_bytes), total_amount, asset,
            start_time, end_time or "open",
        )
        return epoch.epoch_id

    def cancel_epoch(self, ctx: CallContext, epoch_id: int) -> None:
        """Deactivate an epoch for good. Completed claims are unaffected."""
        with self._operation("cancel_epoch") as journal:
            require(self._authorizer, ctx, Action.CANCEL_EPOCH)
            epoch = self._get(epoch_id)
            if not epoch.active:
                raise EpochNotActive(f"Epoch {epoch_id} is already cancelled")
            self._put(journal, replace(epoch, active=False))
            journal.emit(EventKind.EPOCH_CANCELLED, ctx.caller, {
                "epoch_id": epoch_id,
                "claimed_amount": str(epoch.claimed_amount),
                "total_amount": str(epoch.total_amount),
            })

        logger.info("Cancelled epoch %d (%d of %d claimed)",
                    epoch_id, epoch.claimed_amount, epoch.total_amount)

    def emergency_withdraw(self, ctx: CallContext, asset: str, amount: int, to: str) -> None:
        """Operator escape hatch. Moves custody funds ignoring epoch accounting."""
        with self._operation("emergency_withdraw") as journal:
            require(self._authorizer, ctx, Action.EMERGENCY_WITHDRAW)
            _check_amount(amount)
            asset = normalize_identity(asset)
            to = normalize_identity(to)
            journal.emit(EventKind.EMERGENCY_WITHDRAW, ctx.caller, {
                "asset": asset,
                "amount": str(amount),
                "to": to,
            })
            self._transfer(journal, asset, to, amount)

        logger.warning("Emergency withdrawal of %d %s to %s by %s", amount, asset, to, ctx.caller)

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def claim(
        self,
        ctx: CallContext,
        epoch_id: int,
        amount: int,
        proof: Sequence[Digest],
    ) -> None:
        """Redeem the caller's entitlement from one epoch."""
        with self._operation("claim") as journal:
            epoch = self._apply_claim(journal, epoch_id, ctx.caller, amount, proof)
            self._transfer(journal, epoch.asset, ctx.caller, amount)

        logger.info("Claim: %s received %d from epoch %d", ctx.caller, amount, epoch_id)

    def claim_multiple(
        self,
        ctx: CallContext,
        epoch_ids: Sequence[int],
        amounts: Sequence[int],
        proofs: Sequence[Sequence[Digest]],
    ) -> int:
        """Redeem several entitlements in one all-or-nothing call.

        If any tuple fails validation, nothing from the batch is kept.
        Returns the total amount transferred.
        """
        if not (len(epoch_ids) == len(amounts) == len(proofs)):
            raise ArrayLengthMismatch(
                f"Batch lengths differ: {len(epoch_ids)} ids, "
                f"{len(amounts)} amounts, {len(proofs)} proofs"
            )

        with self._operation("claim_multiple") as journal:
            payouts = []
            for epoch_id, amount, proof in zip(epoch_ids, amounts, proofs):
                epoch = self._apply_claim(journal, epoch_id, ctx.caller, amount, proof)
                payouts.append((epoch.asset, amount))
            for asset, amount in payouts:
                self._transfer(journal, asset, ctx.caller, amount)

        total = sum(amount for _, amount in payouts)
        logger.info("Batch claim: %s received %d across %d epochs",
                    ctx.caller, total, len(payouts))
        return total

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def verify(self, epoch_id: int, identity: str, amount: int, proof: Sequence[Digest]) -> bool:
        """Would claim() succeed for this identity right now?"""
        with self._lock:
            try:
                self._check_claim(epoch_id, normalize_identity(identity), amount, proof, self._clock())
            except (LedgerError, ValueError):
                return False
            return True

    def remaining(self, epoch_id: int) -> int:
        with self._lock:
            return self._get(epoch_id).remaining

    def claimed_amount(self, epoch_id: int) -> int:
        with self._lock:
            return self._get(epoch_id).claimed_amount

    def get_epoch(self, epoch_id: int) -> Epoch:
        with self._lock:
            return self._get(epoch_id)

    def status(self, epoch_id: int) -> EpochStatus:
        with self._lock:
            return self._get(epoch_id).status_at(self._clock())

    def is_claimed(self, epoch_id: int, identity: str) -> bool:
        with self._lock:
            return self._claims.is_claimed(epoch_id, normalize_identity(identity))

    def claimants(self, epoch_id: int) -> frozenset[str]:
        with self._lock:
            self._get(epoch_id)
            return self._claims.claimants(epoch_id)

    @property
    def epoch_count(self) -> int:
        return len(self._epochs)

    @property
    def vault(self) -> AssetVault:
        return self._vault

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @contextmanager
    def _operation(self, name: str) -> Iterator[_Journal]:
        with self._lock:
            if self._in_flight:
                raise ReentrancyError(f"{name} called while another operation is in flight")
            self._in_flight = True
            journal = _Journal()
            try:
                yield journal
                self._flush_events(journal)
            except BaseException as exc:
                journal.rollback()
                if isinstance(exc, LedgerError):
                    logger.debug("%s rejected: %s: %s", name, type(exc).__name__, exc)
                raise
            finally:
                self._in_flight = False

    def _flush_events(self, journal: _Journal) -> None:
        if self._event_log is None:
            return
        self._event_log.record_all(journal.events)

    def _get(self, epoch_id: int) -> Epoch:
        if isinstance(epoch_id, bool) or not isinstance(epoch_id, int):
            raise InvalidEpochId(f"Epoch id must be an integer, got {epoch_id!r}")
        if epoch_id < 1 or epoch_id > len(self._epochs):
            raise InvalidEpochId(f"Unknown epoch id: {epoch_id}")
        return self._epochs[epoch_id - 1]

    def _put(self, journal: _Journal, epoch: Epoch) -> None:
        index = epoch.epoch_id - 1
        previous = self._epochs[index]
        self._epochs[index] = epoch

        def undo() -> None:
            self._epochs[index] = previous

        journal.on_rollback(undo)

    def _outstanding(self, asset: str, now: int) -> int:
        return sum(
            e.remaining for e in self._epochs
            if e.asset == asset and e.active and not (e.end_time != 0 and now > e.end_time)
        )

    def _check_claim(
        self,
        epoch_id: int,
        identity: str,
        amount: int,
        proof: Sequence[Digest],
        now: int,
    ) -> Epoch:
        epoch = self._get(epoch_id)
        if not epoch.active:
            raise EpochNotActive(f"Epoch {epoch_id} is cancelled")
        if now < epoch.start_time:
            raise EpochNotStarted(f"Epoch {epoch_id} starts at {epoch.start_time}, now {now}")
        if epoch.end_time != 0 and now > epoch.end_time:
            raise EpochExpired(f"Epoch {epoch_id} ended at {epoch.end_time}, now {now}")
        _check_amount(amount)
        if self._claims.is_claimed(epoch_id, identity):
            raise AlreadyClaimed(f"{identity} already claimed from epoch {epoch_id}")
        siblings = to_siblings(proof)
        if not verify_proof(entitlement_leaf(identity, amount), siblings, epoch.root):
            raise InvalidProof(f"Proof for {identity} does not match epoch {epoch_id} root")
        if epoch.claimed_amount + amount > epoch.total_amount:
            raise EpochExhausted(
                f"Epoch {epoch_id} has {epoch.remaining} left, claim is for {amount}"
            )
        return epoch

    def _apply_claim(
        self,
        journal: _Journal,
        epoch_id: int,
        identity: str,
        amount: int,
        proof: Sequence[Digest],
    ) -> Epoch:
        epoch = self._check_claim(epoch_id, identity, amount, proof, self._clock())

        self._claims.mark(epoch_id, identity)
        journal.on_rollback(lambda: self._claims._unmark(epoch_id, identity))
        updated = replace(epoch, claimed_amount=epoch.claimed_amount + amount)
        self._put(journal, updated)
        journal.emit(EventKind.CLAIMED, identity, {
            "epoch_id": epoch_id,
            "amount": str(amount),
            "asset": epoch.asset,
        })
        return updated

    def _transfer(self, journal: _Journal, asset: str, to: str, amount: int) -> None:
        # Undo goes in first: a failing receive hook must still revert the move.
        moved = []

        def undo() -> None:
            if moved:
                self._vault.move_back(asset, to, amount)

        journal.on_rollback(undo)
        self._vault.move_out(asset, to, amount)
        moved.append(True)
        self._vault.run_receive_hook(asset, to, amount)
