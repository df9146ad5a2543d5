"""
Shared fixtures for the test suite.
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from ai_quota_guard.core.service import MeteringService
from ai_quota_guard.storage.models import Account
from ai_quota_guard.storage.repository import initialize_schema


class FixedClock:
    """Controllable clock for tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture()
def db_path():
    """Path to a freshly initialized SQLite database."""
    with tempfile.TemporaryDirectory() as temp_dir:
        path = os.path.join(temp_dir, "test.db")
        initialize_schema(path)
        yield path


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture()
def service(db_path, clock) -> MeteringService:
    return MeteringService(db_path=db_path, clock=clock)


@pytest.fixture()
def add_account(service, clock):
    """Save an account whose counter was last reset on the clock's current day."""
    def _add(account_id: str = "user-1", **fields) -> Account:
        fields.setdefault("last_reset_at", clock.now)
        account = Account(id=account_id, **fields)
        service.accounts.save(account)
        return account
    return _add
