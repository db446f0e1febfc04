"""Authorization — capability checks injected at the call boundary.

The ledger never decides *who* is an administrator. Each public call
receives a CallContext naming the caller, and admin-only operations ask
the injected Authorizer whether that caller may perform the action.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable, Protocol, runtime_checkable

from merkledrop.crypto.leaf import normalize_identity
from merkledrop.ledger.errors import Unauthorized


class Action(str, enum.Enum):
    """Admin-gated operations."""
    CREATE_EPOCH = "create_epoch"
    CANCEL_EPOCH = "cancel_epoch"
    EMERGENCY_WITHDRAW = "emergency_withdraw"
    UPDATE_ROOT = "update_root"
    MANAGE_ROLES = "manage_roles"


@dataclass(frozen=True)
class CallContext:
    """Who is calling. The caller is normalized like any identity."""
    caller: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "caller", normalize_identity(self.caller))


@runtime_checkable
class Authorizer(Protocol):
    def is_authorized(self, caller: str, action: Action) -> bool:
        ...


class RoleAuthorizer:
    """Admin-set policy: every admin may perform every admin action.

    Usage:
        auth = RoleAuthorizer(admins=["0xadmin..."])
        auth.grant(CallContext("0xadmin..."), "0xoperator...")
    """

    def __init__(self, admins: Iterable[str] = ()) -> None:
        self._admins = {normalize_identity(a) for a in admins}

    def is_authorized(self, caller: str, action: Action) -> bool:
        return caller in self._admins

    @property
    def admins(self) -> frozenset[str]:
        return frozenset(self._admins)

    def grant(self, ctx: CallContext, identity: str) -> None:
        require(self, ctx, Action.MANAGE_ROLES)
        self._admins.add(normalize_identity(identity))

    def revoke(self, ctx: CallContext, identity: str) -> None:
        require(self, ctx, Action.MANAGE_ROLES)
        target = normalize_identity(identity)
        if target == ctx.caller and len(self._admins) == 1:
            raise ValueError("Cannot revoke the last administrator")
        self._admins.discard(target)


def require(authorizer: Authorizer, ctx: CallContext, action: Action) -> None:
    """Raise Unauthorized unless ``ctx.caller`` may perform ``action``."""
    if not authorizer.is_authorized(ctx.caller, action):
        raise Unauthorized(f"{ctx.caller} is not authorized to {action.value}")
