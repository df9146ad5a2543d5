"""
Metering service.

The single entry point collaborators call: admission, usage recording,
statistics and administrative actions over one shared set of stores,
per-account locks and configuration.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

import structlog

from ai_quota_guard.config.loader import DEFAULT_CONFIG, MeteringConfig
from ai_quota_guard.config.settings import Settings
from ai_quota_guard.storage.db import DEFAULT_DB_PATH, transaction
from ai_quota_guard.storage.models import (
    Account,
    AccountFilter,
    AuditEvent,
    AuditKind,
    DeactivationEvent,
    UsageEntry,
    utc_now,
)
from ai_quota_guard.storage.repository import (
    AccountStore,
    AuditStore,
    LedgerStore,
    initialize_schema,
)

from .admin import AccountAdministrator
from .admission import ACCOUNT_NOT_FOUND, AdmissionController, AdmissionResult
from .daily_reset import apply_daily_reset, utc_date_start
from .errors import AccountNotFound, AlreadyInState, ForbiddenOperation
from .identity import CallerIdentity, require_super_admin, resolve_caller
from .locks import AccountLocks
from .quota import daily_limit
from .recorder import DEFAULT_REQUEST_TYPE, UsageRecorder

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ActionResult:
    """Outcome of an administrative action."""
    success: bool
    message: str


@dataclass(frozen=True)
class AccountStats:
    """Usage summary for one account."""
    daily_usage: int
    daily_limit: int
    total_tokens: int
    total_cost: float


@dataclass(frozen=True)
class AuditRecord:
    """An audit event with the contact details of the accounts it names.

    Details are empty when the account no longer exists.
    """
    event: AuditEvent
    account_email: str = ""
    account_name: str = ""
    actor_email: str = ""
    actor_name: str = ""


class MeteringService:
    """Facade over admission, recording and administration.

    All components share one AccountLocks registry, so every operation on
    a given account is serialized with every other one.
    """

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        config: MeteringConfig = DEFAULT_CONFIG,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db_path = db_path
        self.config = config
        self.clock = clock
        self.locks = AccountLocks()

        self.accounts = AccountStore(db_path)
        self.ledger = LedgerStore(db_path)
        self.audit = AuditStore(db_path)

        self.admission = AdmissionController(
            self.accounts, self.audit, config, self.locks, clock
        )
        self.recorder = UsageRecorder(
            self.accounts, self.ledger, config, self.locks, clock
        )
        self.administrator = AccountAdministrator(
            self.accounts, self.audit, config, self.locks, clock
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "MeteringService":
        """Build a service from environment-derived settings."""
        return cls(
            db_path=settings.db_path,
            config=settings.load_metering_config(),
        )

    def initialize(self) -> None:
        """Create the backing tables if they don't exist."""
        initialize_schema(self.db_path)

    def check_admission(self, account_id: str) -> AdmissionResult:
        """Decide whether the account may make a metered request."""
        return self.admission.check(account_id)

    def check_and_reserve(self, account_id: str) -> AdmissionResult:
        """Admit the request and count its call slot in one atomic step.

        Callers that run business logic between admission and recording
        use this to stop concurrent requests from all passing on the last
        slot. Follow it with record_usage(..., reserved=True).
        """
        with self.locks.hold(account_id):
            with transaction(self.db_path) as conn:
                account = self.accounts.get(account_id, conn)
                if account is None:
                    return AdmissionResult.deny(ACCOUNT_NOT_FOUND)

                now = self.clock()
                result = self.admission.evaluate(account, now, conn)
                if result.allowed:
                    account.daily_call_count += 1
                    account.updated_at = now
                    self.accounts.save(account, conn)
                return result

    def record_usage(
        self,
        account_id: str,
        tokens_used: int,
        request_type: str = DEFAULT_REQUEST_TYPE,
        reserved: bool = False,
    ) -> None:
        """Commit a permitted request's consumption; no-op for unknown accounts."""
        self.recorder.record(account_id, tokens_used, request_type, reserved=reserved)

    def get_account_stats(self, account_id: str) -> AccountStats:
        """Daily usage and limit plus lifetime totals.

        Applies the same lazy daily reset as admission before reporting.

        Raises:
            AccountNotFound: If the account does not exist
        """
        with self.locks.hold(account_id):
            with transaction(self.db_path) as conn:
                account = self.accounts.get(account_id, conn)
                if account is None:
                    raise AccountNotFound(account_id)
                if apply_daily_reset(account, self.clock()):
                    self.accounts.save(account, conn)

        return AccountStats(
            daily_usage=account.daily_call_count,
            daily_limit=daily_limit(account, self.config.quota),
            total_tokens=account.total_tokens_used,
            total_cost=account.total_cost,
        )

    def deactivate_account(self, account_id: str, caller: CallerIdentity) -> ActionResult:
        """Deactivate an account on behalf of a super admin caller."""
        try:
            require_super_admin(caller)
            self.administrator.deactivate(account_id, caller.account_id)
        except (AccountNotFound, ForbiddenOperation, AlreadyInState) as e:
            return ActionResult(False, str(e))
        return ActionResult(True, "Account deactivated successfully")

    def reactivate_account(self, account_id: str, caller: CallerIdentity) -> ActionResult:
        """Lift a block or deactivation on behalf of a super admin caller."""
        try:
            require_super_admin(caller)
            self.administrator.reactivate(account_id, caller.account_id)
        except (AccountNotFound, ForbiddenOperation, AlreadyInState) as e:
            return ActionResult(False, str(e))
        return ActionResult(True, "Account reactivated successfully")

    def delete_account(self, account_id: str, caller: CallerIdentity) -> ActionResult:
        """Erase an account on behalf of a super admin caller.

        Callers that are not super admins get an unsuccessful result and
        nothing is read or written.
        """
        try:
            require_super_admin(caller)
            self.administrator.delete(account_id, caller.account_id)
        except (AccountNotFound, ForbiddenOperation) as e:
            return ActionResult(False, str(e))
        return ActionResult(True, "Account and all associated data deleted successfully")

    def get_account(self, account_id: str) -> Optional[Account]:
        return self.accounts.get(account_id)

    def list_accounts(self, account_filter: AccountFilter = AccountFilter.ALL) -> List[Account]:
        return self.accounts.list_accounts(account_filter)

    def list_usage(self, account_id: str, limit: int = 100) -> List[UsageEntry]:
        """An account's ledger entries, newest first."""
        return self.ledger.list_by_account(account_id, limit)

    def list_audit_events(self, kind: AuditKind = AuditKind.ALL, limit: int = 100) -> List[AuditEvent]:
        """Block and deactivation events, newest first."""
        return self.audit.list(kind, limit)

    def list_audit_log(self, kind: AuditKind = AuditKind.ALL, limit: int = 100) -> List[AuditRecord]:
        """Audit events, newest first, with account and actor contact details."""
        with transaction(self.db_path) as conn:
            events = self.audit.list(kind, limit, conn)
            ids = [e.account_id for e in events]
            ids.extend(e.actor_id for e in events if isinstance(e, DeactivationEvent))
            contacts = self.accounts.contacts(ids, conn)

        records = []
        for event in events:
            account_email, account_name = contacts.get(event.account_id, ("", ""))
            actor_email, actor_name = "", ""
            if isinstance(event, DeactivationEvent):
                actor_email, actor_name = contacts.get(event.actor_id, ("", ""))
            records.append(AuditRecord(
                event=event,
                account_email=account_email,
                account_name=account_name,
                actor_email=actor_email,
                actor_name=actor_name,
            ))
        return records

    def resolve_actor(self, actor_id: str) -> CallerIdentity:
        """Build the caller identity of a stored account.

        Used by local entry points such as the CLI, which authenticate
        an operator by account id rather than by a signed token.

        Raises:
            AccountNotFound: If no account has this id
        """
        account = self.accounts.get(actor_id)
        if account is None:
            raise AccountNotFound(actor_id)
        return resolve_caller({
            "userId": account.id,
            "email": account.email,
            "role": account.role.value,
        })

    def sweep_stale_counters(self) -> int:
        """Zero every counter last reset before today (UTC).

        Same effect as the lazy reset done on access, applied in bulk.
        Blocked accounts stay blocked.

        Returns:
            Number of accounts reset
        """
        now = self.clock()
        count = self.accounts.reset_stale_counters(utc_date_start(now), now)
        logger.info("stale_counters_swept", accounts_reset=count)
        return count
