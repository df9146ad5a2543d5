"""
Account state machine.

Blocked and deactivated are stored as independent flags. evaluate_state
is the one place that decides how they combine, so the precedence
(deactivated over blocked over active) holds for every caller.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from ai_quota_guard.storage.models import Account

from .errors import AlreadyInState


class AccountState(Enum):
    """Effective state of an account for admission."""
    ACTIVE = "active"
    BLOCKED = "blocked"
    DEACTIVATED = "deactivated"


DENIAL_REASONS = {
    AccountState.DEACTIVATED: "Account has been deactivated",
    AccountState.BLOCKED: "Account is blocked from AI services",
}


def evaluate_state(account: Account) -> AccountState:
    """Resolve the account's flags into a single effective state."""
    if account.is_deactivated:
        return AccountState.DEACTIVATED
    if account.is_blocked:
        return AccountState.BLOCKED
    return AccountState.ACTIVE


def denial_reason(account: Account) -> Optional[str]:
    """User-facing reason the account's state denies requests, if any."""
    return DENIAL_REASONS.get(evaluate_state(account))


def block(account: Account, now: datetime) -> None:
    """Active -> Blocked, triggered by quota exhaustion."""
    if account.is_blocked:
        raise AlreadyInState("Account is already blocked")
    account.is_blocked = True
    account.updated_at = now


def deactivate(account: Account, now: datetime) -> None:
    """Active|Blocked -> Deactivated. Role checks are the caller's job."""
    if account.is_deactivated:
        raise AlreadyInState("Account is already deactivated")
    account.is_deactivated = True
    account.updated_at = now


def reactivate(account: Account, now: datetime) -> None:
    """Blocked|Deactivated -> Active, clearing both flags."""
    if evaluate_state(account) == AccountState.ACTIVE:
        raise AlreadyInState("Account is already active")
    account.is_blocked = False
    account.is_deactivated = False
    account.updated_at = now
