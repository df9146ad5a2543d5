"""
Admission control for metered requests.

Decides whether an account may make a metered AI request.

Evaluation Order:
1. Existence - Unknown accounts are denied
2. Account state - Deactivated, then blocked, accounts are denied
3. Daily reset - A new UTC day zeroes the count before it is compared
4. Quota - Reaching the daily limit blocks the account and denies
"""

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import structlog

from ai_quota_guard.config.loader import DEFAULT_CONFIG, MeteringConfig
from ai_quota_guard.storage.db import transaction
from ai_quota_guard.storage.models import Account, BlockEvent, utc_now
from ai_quota_guard.storage.repository import AccountStore, AuditStore

from .daily_reset import apply_daily_reset
from .locks import AccountLocks
from .quota import daily_limit
from .state import block, denial_reason

logger = structlog.get_logger(__name__)

ACCOUNT_NOT_FOUND = "Account not found"


@dataclass(frozen=True)
class AdmissionResult:
    """Outcome of an admission check."""
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "AdmissionResult":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "AdmissionResult":
        return cls(allowed=False, reason=reason)


def block_reason(account: Account, limit: int) -> str:
    """Audit reason recorded when an account is blocked."""
    return f"Daily {account.tier.value} limit exceeded ({limit} requests)"


def quota_denial_reason(limit: int) -> str:
    """User-facing denial shown when the daily limit is reached."""
    return f"You have exceeded your daily AI usage limit ({limit} requests)"


class AdmissionController:
    """Applies reset-then-check-then-block for one account at a time.

    The whole evaluation runs under the account's lock and inside a single
    immediate transaction, so two concurrent checks for the same account
    never both see the last free slot.
    """

    def __init__(
        self,
        accounts: AccountStore,
        audit: AuditStore,
        config: MeteringConfig = DEFAULT_CONFIG,
        locks: Optional[AccountLocks] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.accounts = accounts
        self.audit = audit
        self.config = config
        self.locks = locks or AccountLocks()
        self.clock = clock

    def check(self, account_id: str) -> AdmissionResult:
        """Decide whether the account may make a metered request.

        Args:
            account_id: Already-authenticated account id

        Returns:
            AdmissionResult; denials carry a reason safe to show the user

        Raises:
            sqlite3.Error: Store failures are propagated unchanged
        """
        with self.locks.hold(account_id):
            with transaction(self.accounts.db_path) as conn:
                account = self.accounts.get(account_id, conn)
                if account is None:
                    logger.info("admission_denied", account_id=account_id,
                                reason=ACCOUNT_NOT_FOUND)
                    return AdmissionResult.deny(ACCOUNT_NOT_FOUND)
                return self.evaluate(account, self.clock(), conn)

    def evaluate(
        self, account: Account, now: datetime, conn: sqlite3.Connection
    ) -> AdmissionResult:
        """Run the admission steps on a loaded account.

        Must be called with the account's lock held and conn inside an
        open transaction. The account is updated in place and persisted
        whenever it is reset or blocked.
        """
        reason = denial_reason(account)
        if reason is not None:
            logger.info("admission_denied", account_id=account.id, reason=reason)
            return AdmissionResult.deny(reason)

        if apply_daily_reset(account, now):
            self.accounts.save(account, conn)
            logger.debug("daily_count_reset", account_id=account.id)

        limit = daily_limit(account, self.config.quota)
        if account.daily_call_count >= limit:
            block(account, now)
            self.accounts.save(account, conn)
            self.audit.append(
                BlockEvent(
                    account_id=account.id,
                    reason=block_reason(account, limit),
                    timestamp=now,
                ),
                conn,
            )
            logger.warning(
                "account_blocked",
                account_id=account.id,
                tier=account.tier.value,
                limit=limit,
                daily_call_count=account.daily_call_count,
            )
            return AdmissionResult.deny(quota_denial_reason(limit))

        return AdmissionResult.allow()
