"""
Data models for storage layer.

Defines accounts, ledger entries and audit events.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate an opaque unique identifier."""
    return uuid.uuid4().hex


class AccountTier(Enum):
    """Billing tier governing quota derivation."""
    FREE = "free"
    PAID = "paid"


class AccountRole(Enum):
    """Normalized account role."""
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class AccountFilter(Enum):
    """Filters for listing accounts by state."""
    ALL = "all"
    ACTIVE = "active"
    BLOCKED = "blocked"
    DEACTIVATED = "deactivated"


class DeactivationAction(Enum):
    """Administrative actions recorded in the audit log."""
    DEACTIVATE = "deactivate"
    REACTIVATE = "reactivate"


class AuditKind(Enum):
    """Kinds of audit events that can be listed."""
    BLOCKED = "blocked"
    DEACTIVATION = "deactivation"
    ALL = "all"


@dataclass
class Account:
    """Metering subject with tier, counters and state flags.

    Mutated only by the metering core (counters, reset, block) and by
    administrative actions (deactivation and reactivation).
    """
    id: str
    tier: AccountTier = AccountTier.FREE
    role: AccountRole = AccountRole.USER
    email: str = ""
    name: str = ""
    subscription_cost: Optional[float] = None
    subscription_tier: Optional[str] = None
    daily_call_count: int = 0
    last_reset_at: datetime = field(default_factory=utc_now)
    total_tokens_used: int = 0
    total_cost: float = 0.0
    is_blocked: bool = False
    is_deactivated: bool = False
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        """Validate counters and accruals are non-negative."""
        if not self.id:
            raise ValueError("id is required")
        if self.daily_call_count < 0:
            raise ValueError("daily_call_count cannot be negative")
        if self.total_tokens_used < 0:
            raise ValueError("total_tokens_used cannot be negative")
        if self.total_cost < 0:
            raise ValueError("total_cost cannot be negative")
        if self.subscription_cost is not None and self.subscription_cost < 0:
            raise ValueError("subscription_cost cannot be negative")


@dataclass(frozen=True)
class UsageEntry:
    """Immutable ledger record of one metered request.

    Append-only: once written, entries are never modified. They are only
    removed when the owning account is erased.
    """
    account_id: str
    tokens_used: int
    cost: float
    timestamp: datetime = field(default_factory=utc_now)
    request_type: str = "general"
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        if self.tokens_used < 0:
            raise ValueError("tokens_used cannot be negative")
        if self.cost < 0:
            raise ValueError("cost cannot be negative")


@dataclass(frozen=True)
class BlockEvent:
    """Audit record of an automatic quota block."""
    account_id: str
    reason: str
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_id)


@dataclass(frozen=True)
class DeactivationEvent:
    """Audit record of an administrative deactivate/reactivate action."""
    account_id: str
    action: DeactivationAction
    actor_id: str
    timestamp: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_id)


AuditEvent = Union[BlockEvent, DeactivationEvent]
