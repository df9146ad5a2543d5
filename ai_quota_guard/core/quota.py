"""
Quota policy.

Derives an account's daily request allowance from its tier and
subscription cost. Pure and deterministic: no I/O, no clock.
"""

from decimal import Decimal, ROUND_CEILING

from ai_quota_guard.config.loader import DEFAULT_CONFIG, QuotaConfig
from ai_quota_guard.storage.models import Account, AccountTier


def paid_daily_limit(subscription_cost: float, quota: QuotaConfig = DEFAULT_CONFIG.quota) -> int:
    """Daily request limit for a paid subscription.

    The monthly cost is spread over the month, converted to a token budget,
    scaled by the paid value factor and divided by the average request size.
    The result is rounded up and never falls below the paid floor.

    Args:
        subscription_cost: Monthly subscription cost, 0 or less means unknown
        quota: Quota constants

    Returns:
        Daily request limit
    """
    if not subscription_cost or subscription_cost <= 0:
        return quota.paid_floor

    daily_value = Decimal(str(subscription_cost)) / Decimal(quota.days_per_month)
    token_budget = (
        daily_value
        * Decimal(quota.tokens_per_currency_unit)
        * Decimal(str(quota.paid_value_factor))
    )
    requests = token_budget / Decimal(quota.average_tokens_per_request)
    limit = int(requests.to_integral_value(rounding=ROUND_CEILING))

    return max(limit, quota.paid_floor)


def daily_limit(account: Account, quota: QuotaConfig = DEFAULT_CONFIG.quota) -> int:
    """Maximum number of metered requests the account may make per day.

    Args:
        account: Account to evaluate
        quota: Quota constants

    Returns:
        Daily request limit
    """
    if account.tier == AccountTier.FREE:
        return quota.free_daily_limit
    return paid_daily_limit(account.subscription_cost or 0, quota)
