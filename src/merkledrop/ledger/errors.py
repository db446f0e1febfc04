"""Ledger error taxonomy.

Every validation failure is raised synchronously before any state change
is retained. Retrying is the caller's concern.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all ledger and registry rejections."""


class InvalidEpochId(LedgerError):
    """No epoch with this id exists."""


class EpochNotActive(LedgerError):
    """The epoch has been cancelled."""


class EpochNotStarted(LedgerError):
    """The current time is before the epoch's start_time."""


class EpochExpired(LedgerError):
    """The current time is after the epoch's non-zero end_time."""


class AlreadyClaimed(LedgerError):
    """The identity has already claimed from this epoch."""


class InvalidProof(LedgerError):
    """The proof does not link the claimed leaf to the epoch root."""


class InvalidAmount(LedgerError):
    """An amount is zero, negative or out of uint256 range."""


class InsufficientFunding(LedgerError):
    """Custody does not hold enough of the asset for the operation."""


class EpochExhausted(LedgerError):
    """The claim would push claimed_amount above total_amount."""


class ArrayLengthMismatch(LedgerError):
    """Batch input sequences have different lengths."""


class Unauthorized(LedgerError):
    """The caller lacks the capability for an admin-only operation."""


class InvalidRoot(LedgerError):
    """A root is zero or not a 32-byte digest."""


class InvalidSchedule(LedgerError):
    """end_time is non-zero and not after start_time."""


class ReentrancyError(LedgerError):
    """A mutating call was made while another one was in flight."""


class AlreadyRegistered(LedgerError):
    """The identity is already registered under the current root."""


class NotEligible(LedgerError):
    """The eligibility gate refused the identity."""


class RootNotSet(LedgerError):
    """The registry has no root published yet."""


class InvalidLabel(LedgerError):
    """The registration label is empty or not a string."""
