"""
Usage recording.

Commits the consumption of a completed request to the account's
counters and to the append-only ledger.
"""

import sqlite3
from datetime import datetime
from typing import Callable, Optional

import structlog

from ai_quota_guard.config.loader import DEFAULT_CONFIG, MeteringConfig
from ai_quota_guard.storage.db import transaction
from ai_quota_guard.storage.models import Account, UsageEntry, utc_now
from ai_quota_guard.storage.repository import AccountStore, LedgerStore

from .locks import AccountLocks
from .pricing import add_cost, calculate_cost

logger = structlog.get_logger(__name__)

DEFAULT_REQUEST_TYPE = "general"


class UsageRecorder:
    """Accrues count, tokens and cost for permitted requests.

    Recording is fire-and-forget accounting: it runs once per admitted
    request whatever the outcome of the business logic, and an unknown
    account is a silent no-op so that accounting never fails a request
    that has already completed.
    """

    def __init__(
        self,
        accounts: AccountStore,
        ledger: LedgerStore,
        config: MeteringConfig = DEFAULT_CONFIG,
        locks: Optional[AccountLocks] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.accounts = accounts
        self.ledger = ledger
        self.config = config
        self.locks = locks or AccountLocks()
        self.clock = clock

    def record(
        self,
        account_id: str,
        tokens_used: int,
        request_type: str = DEFAULT_REQUEST_TYPE,
        reserved: bool = False,
    ) -> Optional[UsageEntry]:
        """Record one request's consumption.

        Args:
            account_id: Account that made the request
            tokens_used: Tokens consumed, must be >= 0
            request_type: Free-form label stored on the ledger entry
            reserved: True when the call slot was already counted by
                a reservation, so only tokens and cost are added

        Returns:
            The appended ledger entry, or None if the account does not exist

        Raises:
            ValueError: If tokens_used is negative
            sqlite3.Error: Store failures are propagated unchanged
        """
        if tokens_used < 0:
            raise ValueError("tokens_used cannot be negative")

        with self.locks.hold(account_id):
            with transaction(self.accounts.db_path) as conn:
                account = self.accounts.get(account_id, conn)
                if account is None:
                    logger.debug("usage_record_skipped", account_id=account_id,
                                 reason="account not found")
                    return None
                return self.apply(
                    account, tokens_used, request_type, self.clock(), conn,
                    count_call=not reserved,
                )

    def apply(
        self,
        account: Account,
        tokens_used: int,
        request_type: str,
        now: datetime,
        conn: sqlite3.Connection,
        count_call: bool = True,
    ) -> UsageEntry:
        """Accrue usage on a loaded account and append its ledger entry.

        Must be called with the account's lock held and conn inside an
        open transaction.
        """
        cost = calculate_cost(tokens_used, self.config.pricing)

        if count_call:
            account.daily_call_count += 1
        account.total_tokens_used += tokens_used
        account.total_cost = add_cost(account.total_cost, cost)
        account.updated_at = now
        self.accounts.save(account, conn)

        entry = UsageEntry(
            account_id=account.id,
            tokens_used=tokens_used,
            cost=cost,
            timestamp=now,
            request_type=request_type or DEFAULT_REQUEST_TYPE,
        )
        self.ledger.append(entry, conn)

        logger.info(
            "usage_recorded",
            account_id=account.id,
            tokens_used=tokens_used,
            cost=cost,
            request_type=entry.request_type,
            daily_call_count=account.daily_call_count,
        )
        return entry
