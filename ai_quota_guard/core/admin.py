"""
Administrative account actions.

Deactivation, reactivation and erasure. Every action validates the
target's role and current state before writing anything, so a rejected
action leaves no partial changes and no audit event behind.
"""

from datetime import datetime
from typing import Callable, Optional

import structlog

from ai_quota_guard.config.loader import DEFAULT_CONFIG, MeteringConfig
from ai_quota_guard.storage.db import transaction
from ai_quota_guard.storage.models import (
    Account,
    DeactivationAction,
    DeactivationEvent,
    utc_now,
)
from ai_quota_guard.storage.repository import AccountStore, AuditStore

from . import state
from .errors import AccountNotFound, ForbiddenOperation
from .locks import AccountLocks

logger = structlog.get_logger(__name__)


class AccountAdministrator:
    """Applies administrative state changes to accounts."""

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

    def _require_unprotected(self, account: Account, verb: str) -> None:
        if self.config.is_protected(account.role):
            role = account.role.value.replace("_", " ")
            raise ForbiddenOperation(f"Cannot {verb} a {role} account")

    def deactivate(self, account_id: str, actor_id: str) -> Account:
        """Deactivate an account on behalf of an administrator.

        Raises:
            AccountNotFound: If the account does not exist
            ForbiddenOperation: If the account holds a protected role
            AlreadyInState: If the account is already deactivated
        """
        with self.locks.hold(account_id):
            with transaction(self.accounts.db_path) as conn:
                account = self.accounts.get(account_id, conn)
                if account is None:
                    raise AccountNotFound(account_id)
                self._require_unprotected(account, "deactivate")

                now = self.clock()
                state.deactivate(account, now)
                self.accounts.save(account, conn)
                self.audit.append(
                    DeactivationEvent(
                        account_id=account.id,
                        action=DeactivationAction.DEACTIVATE,
                        actor_id=actor_id,
                        timestamp=now,
                    ),
                    conn,
                )

        logger.info("account_deactivated", account_id=account_id, actor_id=actor_id)
        return account

    def reactivate(self, account_id: str, actor_id: str) -> Account:
        """Clear both the blocked and deactivated flags.

        Raises:
            AccountNotFound: If the account does not exist
            AlreadyInState: If the account is neither blocked nor deactivated
        """
        with self.locks.hold(account_id):
            with transaction(self.accounts.db_path) as conn:
                account = self.accounts.get(account_id, conn)
                if account is None:
                    raise AccountNotFound(account_id)

                now = self.clock()
                state.reactivate(account, now)
                self.accounts.save(account, conn)
                self.audit.append(
                    DeactivationEvent(
                        account_id=account.id,
                        action=DeactivationAction.REACTIVATE,
                        actor_id=actor_id,
                        timestamp=now,
                    ),
                    conn,
                )

        logger.info("account_reactivated", account_id=account_id, actor_id=actor_id)
        return account

    def delete(self, account_id: str, actor_id: str) -> None:
        """Erase an account with its ledger and audit history.

        The account's lock entry is kept so that a waiter on the old lock
        and a caller reusing the id are still serialized.

        Raises:
            AccountNotFound: If the account does not exist
            ForbiddenOperation: If the account holds a protected role
        """
        with self.locks.hold(account_id):
            with transaction(self.accounts.db_path) as conn:
                account = self.accounts.get(account_id, conn)
                if account is None:
                    raise AccountNotFound(account_id)
                self._require_unprotected(account, "delete")
                self.accounts.delete_all(account_id, conn)

        logger.info("account_deleted", account_id=account_id, actor_id=actor_id)
