"""
Daily counter reset policy.

Counters are reset lazily: the first access after a UTC date boundary
zeroes the count. The optional sweep does the same for every stale
account at once and is never required for correctness.
"""

from datetime import datetime, time, timezone

from ai_quota_guard.storage.models import Account


def utc_date_start(now: datetime) -> datetime:
    """Midnight UTC of the day containing now."""
    return datetime.combine(now.astimezone(timezone.utc).date(), time.min, tzinfo=timezone.utc)


def needs_reset(last_reset_at: datetime, now: datetime) -> bool:
    """Whether last_reset_at falls on an earlier UTC date than now.

    Time of day is ignored; only the calendar dates are compared.
    """
    last_date = last_reset_at.astimezone(timezone.utc).date()
    today = now.astimezone(timezone.utc).date()
    return last_date < today


def apply_daily_reset(account: Account, now: datetime) -> bool:
    """Zero the account's daily count if its day has rolled over.

    Blocking is left untouched: a blocked account stays blocked until
    an administrator reactivates it.

    Args:
        account: Account to update in place
        now: Current time

    Returns:
        True if the account was reset and needs to be persisted
    """
    if not needs_reset(account.last_reset_at, now):
        return False

    account.daily_call_count = 0
    account.last_reset_at = now
    account.updated_at = now
    return True
