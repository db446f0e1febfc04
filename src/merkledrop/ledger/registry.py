"""Contributor registry — Merkle-gated registration rights.

An administrator publishes the root of a tree over Registration records
(identity, label, score). A contributor proves membership once per
published root and is then recorded with their committed label and
score. Publishing a new root bumps the root version, which lets every
contributor register again against the new set.

Sybil resistance is not decided here. An optional eligibility gate (an
external reputation oracle) is asked a yes/no question before the
proof is even checked.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Dict, Optional, Sequence

from eth_utils import encode_hex

from merkledrop.crypto.leaf import normalize_identity, registration_leaf
from merkledrop.crypto.merkle import verify_proof
from merkledrop.ledger.auth import Action, Authorizer, CallContext, require
from merkledrop.ledger.distributor import ZERO_ROOT, Digest, to_digest, to_siblings
from merkledrop.ledger.errors import (
    AlreadyRegistered,
    InvalidAmount,
    InvalidLabel,
    InvalidProof,
    InvalidRoot,
    NotEligible,
    RootNotSet,
)
from merkledrop.models.entitlement import Registration
from merkledrop.models.epoch import Contributor
from merkledrop.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)

EligibilityGate = Callable[[str], bool]


class ContributorRegistry:
    """Registration state keyed by identity.

    Usage:
        registry = ContributorRegistry(RoleAuthorizer([admin]))
        registry.update_root(CallContext(admin), tree.root)
        registry.register(CallContext(alice), "alice", 234, tree.proof_for(alice))
        registry.get_contributor(alice).score   # 234
    """

    def __init__(
        self,
        authorizer: Authorizer,
        eligibility: Optional[EligibilityGate] = None,
        clock: Optional[Callable[[], int]] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._authorizer = authorizer
        self._eligibility = eligibility
        self._clock = clock or (lambda: int(time.time()))
        self._event_log = event_log
        self._root: Optional[bytes] = None
        self._root_version = 0
        self._contributors: Dict[str, Contributor] = {}
        self._lock = threading.Lock()

    def update_root(self, ctx: CallContext, root: Digest) -> int:
        """Publish a new registration root. Returns the new root version."""
        with self._lock:
            require(self._authorizer, ctx, Action.UPDATE_ROOT)
            try:
                root_bytes = to_digest(root)
            except InvalidProof as exc:
                raise InvalidRoot(str(exc)) from exc
            if root_bytes == ZERO_ROOT:
                raise InvalidRoot("Root must be non-zero")
            version = self._root_version + 1
            if self._event_log is not None:
                self._event_log.record(EventKind.ROOT_UPDATED, ctx.caller, {
                    "root": encode_hex(root_bytes),
                    "root_version": version,
                })
            self._root = root_bytes
            self._root_version = version

        logger.info("Registry root v%d: %s", version, encode_hex(root_bytes))
        return version

    def register(
        self,
        ctx: CallContext,
        label: str,
        score: int,
        proof: Sequence[Digest],
    ) -> Contributor:
        """Register the caller with the label and score committed in the tree."""
        with self._lock:
            if self._root is None:
                raise RootNotSet("No registration root has been published")
            identity = ctx.caller
            existing = self._contributors.get(identity)
            if existing is not None and existing.root_version == self._root_version:
                raise AlreadyRegistered(
                    f"{identity} already registered under root v{self._root_version}"
                )
            if self._eligibility is not None and not self._eligibility(identity):
                raise NotEligible(f"{identity} was refused by the eligibility gate")
            if not isinstance(label, str) or not label:
                raise InvalidLabel(f"Label must be a non-empty string, got {label!r}")
            try:
                record = Registration(identity, label, score)
            except ValueError as exc:
                raise InvalidAmount(str(exc)) from exc
            siblings = to_siblings(proof)
            leaf = registration_leaf(record.identity, record.label, record.score)
            if not verify_proof(leaf, siblings, self._root):
                raise InvalidProof(f"Registration proof for {identity} does not match the root")

            contributor = Contributor(
                identity=identity,
                label=record.label,
                score=record.score,
                registered_at=self._clock(),
                root_version=self._root_version,
            )
            if self._event_log is not None:
                self._event_log.record(EventKind.CONTRIBUTOR_REGISTERED, identity, {
                    "label": contributor.label,
                    "score": str(contributor.score),
                    "root_version": contributor.root_version,
                })
            self._contributors[identity] = contributor

        logger.info("Registered %s as %s (score %d)", identity, label, score)
        return contributor

    def get_contributor(self, identity: str) -> Optional[Contributor]:
        return self._contributors.get(normalize_identity(identity))

    def is_registered(self, identity: str) -> bool:
        contributor = self.get_contributor(identity)
        return contributor is not None and contributor.root_version == self._root_version

    @property
    def root(self) -> Optional[bytes]:
        return self._root

    @property
    def root_version(self) -> int:
        return self._root_version

    @property
    def contributor_count(self) -> int:
        return len(self._contributors)
