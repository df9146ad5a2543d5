"""
Unit tests for storage layer.

Tests schema creation, account persistence, the usage ledger and the audit log.
"""

import os
import sqlite3
import tempfile
from datetime import datetime, timezone

import pytest

from ai_quota_guard.storage.db import get_connection, transaction
from ai_quota_guard.storage.models import (
    Account,
    AccountRole,
    AccountTier,
    AuditKind,
    BlockEvent,
    DeactivationAction,
    DeactivationEvent,
    UsageEntry,
)
from ai_quota_guard.storage.repository import (
    AccountStore,
    AuditStore,
    LedgerStore,
    initialize_schema,
)


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify tables are created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("""
                    SELECT name FROM sqlite_master
                    WHERE type='table' ORDER BY name
                """)
                tables = [row[0] for row in cursor.fetchall()]
                assert tables == [
                    "account", "blocked_event", "deactivation_event", "usage_entry"
                ]

                cursor = conn.execute("PRAGMA table_info(usage_entry)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == [
                    'id', 'account_id', 'timestamp', 'tokens_used', 'cost', 'request_type'
                ]
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self, db_path):
        initialize_schema(db_path)
        initialize_schema(db_path)


class TestAccountStore:
    """Test account persistence."""

    def test_round_trip(self, db_path):
        """Every field survives a save and load."""
        store = AccountStore(db_path)
        account = Account(
            id="user-1",
            email="a@example.com",
            name="A",
            role=AccountRole.ADMIN,
            tier=AccountTier.PAID,
            subscription_cost=19.99,
            subscription_tier="pro",
            daily_call_count=3,
            last_reset_at=datetime(2024, 3, 15, 8, 30, tzinfo=timezone.utc),
            total_tokens_used=1234,
            total_cost=0.5,
            is_blocked=True,
            is_deactivated=False,
        )

        store.save(account)

        assert store.get("user-1") == account

    def test_get_missing(self, db_path):
        assert AccountStore(db_path).get("missing") is None

    def test_save_overwrites(self, db_path):
        store = AccountStore(db_path)
        account = Account(id="user-1")
        store.save(account)

        account.daily_call_count = 5
        store.save(account)

        assert store.get("user-1").daily_call_count == 5
        assert len(store.list_accounts()) == 1

    def test_delete_all_keeps_other_accounts(self, db_path):
        accounts = AccountStore(db_path)
        ledger = LedgerStore(db_path)
        audit = AuditStore(db_path)
        accounts.save(Account(id="a"))
        accounts.save(Account(id="b"))
        ledger.append(UsageEntry(account_id="a", tokens_used=1, cost=0.0))
        ledger.append(UsageEntry(account_id="b", tokens_used=1, cost=0.0))
        audit.append(BlockEvent(account_id="a", reason="r"))
        audit.append(BlockEvent(account_id="b", reason="r"))

        accounts.delete_all("a")

        assert accounts.get("a") is None
        assert ledger.list_by_account("a") == []
        assert [e.account_id for e in audit.list(AuditKind.BLOCKED)] == ["b"]
        assert len(ledger.list_by_account("b")) == 1

    def test_contacts_skip_missing_ids(self, db_path):
        store = AccountStore(db_path)
        store.save(Account(id="a", email="a@example.com", name="Alice"))
        store.save(Account(id="b", email="b@example.com"))

        contacts = store.contacts(["a", "b", "a", "gone"])

        assert contacts == {"a": ("a@example.com", "Alice"), "b": ("b@example.com", "")}
        assert store.contacts([]) == {}


class TestTransactions:
    """Test grouping writes in one transaction."""

    def test_failed_transaction_rolls_back(self, db_path):
        store = AccountStore(db_path)

        with pytest.raises(RuntimeError):
            with transaction(db_path) as conn:
                store.save(Account(id="user-1"), conn)
                raise RuntimeError("boom")

        assert store.get("user-1") is None

    def test_store_errors_propagate(self):
        """Missing tables surface as sqlite errors, not silent skips."""
        with tempfile.TemporaryDirectory() as temp_dir:
            store = AccountStore(os.path.join(temp_dir, "empty.db"))
            with pytest.raises(sqlite3.OperationalError):
                store.get("user-1")


class TestModelValidation:
    """Test model invariants."""

    def test_negative_count_rejected(self):
        with pytest.raises(ValueError, match="daily_call_count"):
            Account(id="a", daily_call_count=-1)

    def test_negative_tokens_rejected(self):
        with pytest.raises(ValueError, match="total_tokens_used"):
            Account(id="a", total_tokens_used=-1)

    def test_negative_cost_rejected(self):
        with pytest.raises(ValueError, match="total_cost"):
            Account(id="a", total_cost=-0.1)

    def test_usage_entry_is_immutable(self):
        entry = UsageEntry(account_id="a", tokens_used=10, cost=0.00002)
        with pytest.raises(AttributeError):
            entry.tokens_used = 20

    def test_usage_entry_negative_tokens_rejected(self):
        with pytest.raises(ValueError):
            UsageEntry(account_id="a", tokens_used=-1, cost=0.0)


class TestAuditStore:
    """Test audit log listing."""

    def test_kinds_are_listed_separately(self, db_path):
        audit = AuditStore(db_path)
        audit.append(BlockEvent(account_id="a", reason="Daily free limit exceeded (10 requests)"))
        audit.append(DeactivationEvent(
            account_id="b", action=DeactivationAction.DEACTIVATE, actor_id="root"
        ))

        blocked = audit.list(AuditKind.BLOCKED)
        deactivations = audit.list(AuditKind.DEACTIVATION)

        assert [e.account_id for e in blocked] == ["a"]
        assert [e.account_id for e in deactivations] == ["b"]
        assert deactivations[0].actor_id == "root"

    def test_unsupported_event_rejected(self, db_path):
        with pytest.raises(TypeError):
            AuditStore(db_path).append("not an event")
