"""
Tests for the CLI interface.
"""
import os
import sqlite3
import tempfile
from unittest.mock import patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

from ai_quota_guard.cli.main import app, EXIT_CODE_OK, EXIT_CODE_FAIL
from ai_quota_guard.storage.models import Account, AccountRole, AccountTier
from ai_quota_guard.storage.repository import AccountStore, initialize_schema

runner = CliRunner()


@pytest.fixture(autouse=True)
def wide_console():
    """Render tables wide enough that cells are not wrapped."""
    with patch("ai_quota_guard.cli.main.console", Console(width=200)):
        yield


@pytest.fixture
def cli_db():
    """Database with a few accounts whose counters were reset today."""
    with tempfile.TemporaryDirectory() as temp_dir:
        path = os.path.join(temp_dir, "cli.db")
        initialize_schema(path)
        store = AccountStore(path)
        store.save(Account(id="free-user", email="free@example.com", daily_call_count=9))
        store.save(Account(
            id="paid-user", tier=AccountTier.PAID, subscription_cost=30.0
        ))
        store.save(Account(
            id="root", email="root@example.com", role=AccountRole.SUPER_ADMIN
        ))
        yield path


def invoke(db_path, *args, **kwargs):
    return runner.invoke(app, ["--db", db_path, *args], **kwargs)


class TestCLI:
    """Test CLI commands."""

    def test_no_command_prints_hint(self, cli_db):
        result = invoke(cli_db)
        assert result.exit_code == EXIT_CODE_OK
        assert "Use --help" in result.output

    def test_init(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "new.db")
            result = invoke(path, "init")

            assert result.exit_code == EXIT_CODE_OK
            assert "Database initialized successfully" in result.output
            assert os.path.exists(path)

    def test_check_allowed(self, cli_db):
        result = invoke(cli_db, "check", "free-user")
        assert result.exit_code == EXIT_CODE_OK
        assert "Request allowed" in result.output

    def test_check_denied(self, cli_db):
        invoke(cli_db, "record", "free-user", "--tokens", "500")

        result = invoke(cli_db, "check", "free-user")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "daily AI usage limit (10 requests)" in result.output

    def test_check_unknown_account(self, cli_db):
        result = invoke(cli_db, "check", "nobody")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Account not found" in result.output

    def test_record_and_stats(self, cli_db):
        result = invoke(cli_db, "record", "paid-user", "--tokens", "500", "--type", "chat")
        assert result.exit_code == EXIT_CODE_OK

        result = invoke(cli_db, "stats", "paid-user")

        assert result.exit_code == EXIT_CODE_OK
        assert "1 / 250 requests" in result.output
        assert "Total tokens: 500" in result.output
        assert "$0.001" in result.output

    def test_record_rejects_negative_tokens(self, cli_db):
        result = invoke(cli_db, "record", "paid-user", "--tokens", "-1")
        assert result.exit_code != EXIT_CODE_OK

    def test_stats_unknown_account(self, cli_db):
        result = invoke(cli_db, "stats", "nobody")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Account not found" in result.output

    def test_usage_listing(self, cli_db):
        invoke(cli_db, "record", "paid-user", "--tokens", "1234", "--type", "summary")

        result = invoke(cli_db, "usage", "paid-user")

        assert result.exit_code == EXIT_CODE_OK
        assert "summary" in result.output
        assert "1,234" in result.output

    def test_usage_empty(self, cli_db):
        result = invoke(cli_db, "usage", "paid-user")
        assert result.exit_code == EXIT_CODE_OK
        assert "No usage recorded" in result.output

    def test_deactivate_and_reactivate(self, cli_db):
        result = invoke(cli_db, "deactivate", "free-user", "--actor", "root")
        assert result.exit_code == EXIT_CODE_OK
        assert "deactivated successfully" in result.output

        result = invoke(cli_db, "accounts", "--state", "deactivated")
        assert "free-user" in result.output

        result = invoke(cli_db, "reactivate", "free-user", "--actor", "root")
        assert result.exit_code == EXIT_CODE_OK

        result = invoke(cli_db, "reactivate", "free-user", "--actor", "root")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "already active" in result.output

    def test_deactivate_protected(self, cli_db):
        result = invoke(cli_db, "deactivate", "root", "--actor", "root")
        assert result.exit_code == EXIT_CODE_FAIL
        assert "Cannot deactivate a super admin account" in result.output

    def test_delete_requires_confirmation(self, cli_db):
        result = invoke(cli_db, "delete", "free-user", "--actor", "root", input="n\n")
        assert result.exit_code != EXIT_CODE_OK
        assert AccountStore(cli_db).get("free-user") is not None

    def test_delete_with_yes(self, cli_db):
        result = invoke(cli_db, "delete", "free-user", "--actor", "root", "--yes")
        assert result.exit_code == EXIT_CODE_OK
        assert AccountStore(cli_db).get("free-user") is None

    def test_logs(self, cli_db):
        invoke(cli_db, "record", "free-user", "--tokens", "1")
        invoke(cli_db, "check", "free-user")
        invoke(cli_db, "deactivate", "paid-user", "--actor", "root")

        result = invoke(cli_db, "logs", "--type", "blocked")
        assert result.exit_code == EXIT_CODE_OK
        assert "Daily free limit exceeded" in result.output

        result = invoke(cli_db, "logs")
        assert "deactivate" in result.output
        assert "by root@example.com" in result.output
        assert "free@example.com" in result.output

    def test_logs_limit_one(self, cli_db):
        invoke(cli_db, "record", "free-user", "--tokens", "1")
        invoke(cli_db, "check", "free-user")

        result = invoke(cli_db, "logs", "--limit", "1")

        assert result.exit_code == EXIT_CODE_OK
        assert "Daily free limit exceeded" in result.output

    def test_logs_empty(self, cli_db):
        result = invoke(cli_db, "logs")
        assert result.exit_code == EXIT_CODE_OK
        assert "No audit events found" in result.output

    def test_accounts_listing(self, cli_db):
        result = invoke(cli_db, "accounts")
        assert result.exit_code == EXIT_CODE_OK
        assert "paid-user" in result.output
        assert "super_admin" in result.output

    def test_sweep(self, cli_db):
        result = invoke(cli_db, "sweep")
        assert result.exit_code == EXIT_CODE_OK
        assert "0 account(s)" in result.output

    def test_store_failure_reported_generically(self, cli_db):
        """Internal errors do not leak store details."""
        with patch(
            "ai_quota_guard.core.service.MeteringService.check_admission",
            side_effect=sqlite3.OperationalError("disk I/O error at /secret/path"),
        ):
            result = invoke(cli_db, "--log-level", "critical", "check", "free-user")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Internal error" in result.output
        assert "/secret/path" not in result.output

    def test_admin_commands_require_super_admin(self, cli_db):
        """Non super admin actors are refused and nothing changes."""
        for args in (
            ("deactivate", "paid-user", "--actor", "free-user"),
            ("reactivate", "paid-user", "--actor", "free-user"),
            ("delete", "paid-user", "--actor", "free-user", "--yes"),
        ):
            result = invoke(cli_db, *args)
            assert result.exit_code == EXIT_CODE_FAIL
            assert "Super Admin access required" in result.output

        assert AccountStore(cli_db).get("paid-user").is_deactivated is False
        assert "No audit events found" in invoke(cli_db, "logs").output

    def test_unknown_actor(self, cli_db):
        result = invoke(cli_db, "deactivate", "free-user", "--actor", "ghost")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Unknown actor: ghost" in result.output
        assert AccountStore(cli_db).get("free-user").is_deactivated is False
