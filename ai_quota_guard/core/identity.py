"""
Caller identity normalization.

Token payloads arrive in more than one shape: the id may be under
``userId`` or ``id`` and the role under ``role`` or ``account_type``,
with ``super-admin`` and ``super_admin`` both in use. resolve_caller
turns any of them into one CallerIdentity at the boundary so nothing
downstream re-interprets raw claims. Signature verification happens
before this point and is not done here.
"""

from dataclasses import dataclass
from typing import Any, Mapping

from ai_quota_guard.storage.models import AccountRole

from .errors import ForbiddenOperation, InvalidIdentity

_ROLE_ALIASES = {
    "user": AccountRole.USER,
    "admin": AccountRole.ADMIN,
    "super_admin": AccountRole.SUPER_ADMIN,
    "super-admin": AccountRole.SUPER_ADMIN,
    "superadmin": AccountRole.SUPER_ADMIN,
    # external tokens carry the billing tier where the role should be
    "free": AccountRole.USER,
    "paid": AccountRole.USER,
}


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated caller with a normalized role."""
    account_id: str
    role: AccountRole
    email: str = ""

    @property
    def is_super_admin(self) -> bool:
        return self.role == AccountRole.SUPER_ADMIN


def normalize_role(value: str) -> AccountRole:
    """Map a raw role claim to an AccountRole.

    Raises:
        InvalidIdentity: If the value is not a recognised role
    """
    role = _ROLE_ALIASES.get(str(value).strip().lower())
    if role is None:
        raise InvalidIdentity(f"Unrecognised role: {value}")
    return role


def resolve_caller(claims: Mapping[str, Any]) -> CallerIdentity:
    """Build a CallerIdentity from verified token claims.

    Args:
        claims: Decoded token payload

    Returns:
        Normalized caller identity

    Raises:
        InvalidIdentity: If the claims lack an id or a role
    """
    account_id = claims.get("userId") or claims.get("id")
    raw_role = claims.get("role") or claims.get("account_type")
    if not account_id or not raw_role:
        raise InvalidIdentity("Invalid token payload")

    return CallerIdentity(
        account_id=str(account_id),
        role=normalize_role(raw_role),
        email=str(claims.get("email") or ""),
    )


def require_super_admin(caller: CallerIdentity) -> None:
    """Reject callers that may not perform administrative actions.

    Raises:
        ForbiddenOperation: If the caller is not a super admin
    """
    if not caller.is_super_admin:
        raise ForbiddenOperation("Super Admin access required")
