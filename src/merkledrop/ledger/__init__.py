"""Ledger subsystem — epochs, claims, custody, registration, authorization."""

from merkledrop.ledger.auth import Action, CallContext, RoleAuthorizer
from merkledrop.ledger.claims import ClaimTracker
from merkledrop.ledger.distributor import EntitlementLedger
from merkledrop.ledger.registry import ContributorRegistry
from merkledrop.ledger.vault import AssetVault

__all__ = [
    "Action",
    "AssetVault",
    "CallContext",
    "ClaimTracker",
    "ContributorRegistry",
    "EntitlementLedger",
    "RoleAuthorizer",
]
