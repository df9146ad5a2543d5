"""
Repository pattern for data access.

Handles persistence of accounts, the append-only usage ledger and the
audit log. Every method accepts an optional connection so callers can group
several writes into one transaction.
"""

import math
import sqlite3
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from .db import DEFAULT_DB_PATH, use_connection
from .models import (
    Account,
    AccountFilter,
    AccountRole,
    AccountTier,
    AuditEvent,
    AuditKind,
    BlockEvent,
    DeactivationAction,
    DeactivationEvent,
    UsageEntry,
)

_ACCOUNT_COLUMNS = (
    "id, email, name, role, tier, subscription_cost, subscription_tier, "
    "daily_call_count, last_reset_at, total_tokens_used, total_cost, "
    "is_blocked, is_deactivated, created_at, updated_at"
)

_ACCOUNT_FILTERS = {
    AccountFilter.ALL: "",
    AccountFilter.ACTIVE: " WHERE is_blocked = 0 AND is_deactivated = 0",
    AccountFilter.BLOCKED: " WHERE is_blocked = 1",
    AccountFilter.DEACTIVATED: " WHERE is_deactivated = 1",
}


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the account, ledger and audit tables if they don't exist.

    usage_entry, blocked_event and deactivation_event are append-only:
    rows are only ever removed as part of erasing their account.

    Args:
        db_path: Path to SQLite database file
    """
    with use_connection(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS account (
                id TEXT PRIMARY KEY,
                email TEXT NOT NULL DEFAULT '',
                name TEXT NOT NULL DEFAULT '',
                role TEXT NOT NULL,
                tier TEXT NOT NULL,
                subscription_cost REAL,
                subscription_tier TEXT,
                daily_call_count INTEGER NOT NULL DEFAULT 0,
                last_reset_at TEXT NOT NULL,
                total_tokens_used INTEGER NOT NULL DEFAULT 0,
                total_cost REAL NOT NULL DEFAULT 0,
                is_blocked INTEGER NOT NULL DEFAULT 0,
                is_deactivated INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS usage_entry (
                id TEXT PRIMARY KEY,
                account_id TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                tokens_used INTEGER NOT NULL,
                cost REAL NOT NULL,
                request_type TEXT NOT NULL DEFAULT 'general'
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_usage_entry_account
            ON usage_entry (account_id, timestamp DESC)
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS blocked_event (
                id TEXT PRIMARY KEY,
                account_id TEXT NOT NULL,
                reason TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS deactivation_event (
                id TEXT PRIMARY KEY,
                account_id TEXT NOT NULL,
                action TEXT NOT NULL,
                actor_id TEXT NOT NULL,
                timestamp TEXT NOT NULL
            )
        """)


def _iso(value: datetime) -> str:
    # Stored as fixed-width UTC text so timestamps compare correctly as strings.
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _row_to_account(row: tuple) -> Account:
    return Account(
        id=row[0],
        email=row[1],
        name=row[2],
        role=AccountRole(row[3]),
        tier=AccountTier(row[4]),
        subscription_cost=row[5],
        subscription_tier=row[6],
        daily_call_count=row[7],
        last_reset_at=datetime.fromisoformat(row[8]),
        total_tokens_used=row[9],
        total_cost=row[10],
        is_blocked=bool(row[11]),
        is_deactivated=bool(row[12]),
        created_at=datetime.fromisoformat(row[13]),
        updated_at=datetime.fromisoformat(row[14]),
    )


class AccountStore:
    """Read/write access to account records."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def get(
        self, account_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Account]:
        """Load an account by id, or None if it does not exist."""
        with use_connection(self.db_path, conn) as c:
            row = c.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM account WHERE id = ?",
                (account_id,)
            ).fetchone()
        return _row_to_account(row) if row else None

    def contacts(
        self, account_ids: Iterable[str], conn: Optional[sqlite3.Connection] = None
    ) -> Dict[str, Tuple[str, str]]:
        """Map each existing account id to its (email, name).

        Ids with no matching account are left out of the result.
        """
        ids = sorted(set(account_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        with use_connection(self.db_path, conn) as c:
            rows = c.execute(
                f"SELECT id, email, name FROM account WHERE id IN ({placeholders})",
                ids,
            ).fetchall()
        return {row[0]: (row[1], row[2]) for row in rows}

    def save(
        self, account: Account, conn: Optional[sqlite3.Connection] = None
    ) -> None:
        """Insert or fully overwrite an account record."""
        with use_connection(self.db_path, conn) as c:
            c.execute(f"""
                INSERT OR REPLACE INTO account ({_ACCOUNT_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                account.id,
                account.email,
                account.name,
                account.role.value,
                account.tier.value,
                account.subscription_cost,
                account.subscription_tier,
                account.daily_call_count,
                _iso(account.last_reset_at),
                account.total_tokens_used,
                account.total_cost,
                int(account.is_blocked),
                int(account.is_deactivated),
                _iso(account.created_at),
                _iso(account.updated_at),
            ))

    def delete_all(
        self, account_id: str, conn: Optional[sqlite3.Connection] = None
    ) -> None:
        """Erase an account together with its ledger and audit history."""
        with use_connection(self.db_path, conn) as c:
            c.execute("DELETE FROM usage_entry WHERE account_id = ?", (account_id,))
            c.execute("DELETE FROM blocked_event WHERE account_id = ?", (account_id,))
            c.execute(
                "DELETE FROM deactivation_event WHERE account_id = ?", (account_id,)
            )
            c.execute("DELETE FROM account WHERE id = ?", (account_id,))

    def list_accounts(
        self,
        account_filter: AccountFilter = AccountFilter.ALL,
        conn: Optional[sqlite3.Connection] = None
    ) -> List[Account]:
        """List accounts matching a state filter, oldest first."""
        query = (
            f"SELECT {_ACCOUNT_COLUMNS} FROM account"
            + _ACCOUNT_FILTERS[account_filter]
            + " ORDER BY created_at"
        )
        with use_connection(self.db_path, conn) as c:
            rows = c.execute(query).fetchall()
        return [_row_to_account(row) for row in rows]

    def reset_stale_counters(
        self, today_start: datetime, now: datetime,
        conn: Optional[sqlite3.Connection] = None
    ) -> int:
        """Zero daily counters last reset before today_start.

        Returns:
            Number of accounts reset
        """
        with use_connection(self.db_path, conn) as c:
            cursor = c.execute("""
                UPDATE account
                SET daily_call_count = 0, last_reset_at = ?, updated_at = ?
                WHERE last_reset_at < ?
            """, (_iso(now), _iso(now), _iso(today_start)))
            return cursor.rowcount


class LedgerStore:
    """Append-only ledger of usage entries."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def append(
        self, entry: UsageEntry, conn: Optional[sqlite3.Connection] = None
    ) -> None:
        """Append a single usage entry. Entries are never updated."""
        with use_connection(self.db_path, conn) as c:
            c.execute("""
                INSERT INTO usage_entry
                (id, account_id, timestamp, tokens_used, cost, request_type)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (
                entry.id,
                entry.account_id,
                _iso(entry.timestamp),
                entry.tokens_used,
                entry.cost,
                entry.request_type,
            ))

    def list_by_account(
        self, account_id: str, limit: int = 100,
        conn: Optional[sqlite3.Connection] = None
    ) -> List[UsageEntry]:
        """Fetch an account's usage entries, newest first.

        Args:
            account_id: Account whose entries to return
            limit: Maximum number of entries to return

        Returns:
            List of usage entries ordered by timestamp (newest first)
        """
        with use_connection(self.db_path, conn) as c:
            rows = c.execute("""
                SELECT id, account_id, timestamp, tokens_used, cost, request_type
                FROM usage_entry
                WHERE account_id = ?
                ORDER BY timestamp DESC, rowid DESC
                LIMIT ?
            """, (account_id, limit)).fetchall()
        return [
            UsageEntry(
                id=row[0],
                account_id=row[1],
                timestamp=datetime.fromisoformat(row[2]),
                tokens_used=row[3],
                cost=row[4],
                request_type=row[5] or "general",
            )
            for row in rows
        ]


class AuditStore:
    """Append-only log of block and deactivation events."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def append(
        self, event: AuditEvent, conn: Optional[sqlite3.Connection] = None
    ) -> None:
        """Append a block or deactivation event."""
        with use_connection(self.db_path, conn) as c:
            if isinstance(event, BlockEvent):
                c.execute("""
                    INSERT INTO blocked_event (id, account_id, reason, timestamp)
                    VALUES (?, ?, ?, ?)
                """, (event.id, event.account_id, event.reason,
                      _iso(event.timestamp)))
            elif isinstance(event, DeactivationEvent):
                c.execute("""
                    INSERT INTO deactivation_event
                    (id, account_id, action, actor_id, timestamp)
                    VALUES (?, ?, ?, ?, ?)
                """, (event.id, event.account_id, event.action.value,
                      event.actor_id, _iso(event.timestamp)))
            else:
                raise TypeError(f"Unsupported audit event: {type(event).__name__}")

    def list(
        self, kind: AuditKind = AuditKind.ALL, limit: int = 100,
        conn: Optional[sqlite3.Connection] = None
    ) -> List[AuditEvent]:
        """List audit events newest first.

        With AuditKind.ALL each kind contributes at most half the limit,
        rounded up, before the merged list is sorted and truncated to the
        limit.
        """
        per_kind = math.ceil(limit / 2) if kind == AuditKind.ALL else limit
        events: List[AuditEvent] = []

        with use_connection(self.db_path, conn) as c:
            if kind in (AuditKind.BLOCKED, AuditKind.ALL):
                rows = c.execute("""
                    SELECT id, account_id, reason, timestamp FROM blocked_event
                    ORDER BY timestamp DESC, rowid DESC LIMIT ?
                """, (per_kind,)).fetchall()
                events.extend(
                    BlockEvent(
                        id=row[0],
                        account_id=row[1],
                        reason=row[2],
                        timestamp=datetime.fromisoformat(row[3]),
                    )
                    for row in rows
                )
            if kind in (AuditKind.DEACTIVATION, AuditKind.ALL):
                rows = c.execute("""
                    SELECT id, account_id, action, actor_id, timestamp
                    FROM deactivation_event
                    ORDER BY timestamp DESC, rowid DESC LIMIT ?
                """, (per_kind,)).fetchall()
                events.extend(
                    DeactivationEvent(
                        id=row[0],
                        account_id=row[1],
                        action=DeactivationAction(row[2]),
                        actor_id=row[3],
                        timestamp=datetime.fromisoformat(row[4]),
                    )
                    for row in rows
                )

        if kind == AuditKind.ALL:
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        return events
