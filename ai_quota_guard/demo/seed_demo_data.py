# ai_quota_guard/demo/seed_demo_data.py

from datetime import timedelta

from ai_quota_guard.core.service import MeteringService
from ai_quota_guard.storage.models import Account, AccountRole, AccountTier, utc_now

service = MeteringService()
service.initialize()

yesterday = utc_now() - timedelta(days=1)

accounts = [
    Account(
        id="admin",
        email="admin@example.com",
        name="Super Admin",
        role=AccountRole.SUPER_ADMIN,
        tier=AccountTier.PAID,
        subscription_cost=30.0,
    ),
    Account(
        id="free-user",
        email="free@example.com",
        name="Free User",
        daily_call_count=9,  # one request left today
    ),
    Account(
        id="paid-user",
        email="paid@example.com",
        name="Paid User",
        tier=AccountTier.PAID,
        subscription_cost=60.0,
        subscription_tier="pro",
    ),
    Account(
        id="stale-user",
        email="stale@example.com",
        name="Stale Counter",
        daily_call_count=10,
        last_reset_at=yesterday,
    ),
]

for a in accounts:
    service.accounts.save(a)

service.record_usage("paid-user", 1500, "summary")
service.record_usage("paid-user", 4200, "chat")

print("Demo accounts inserted")
