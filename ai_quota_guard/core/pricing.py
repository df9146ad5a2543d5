"""
Pricing calculations.

Converts token consumption into accrued cost.
"""

from decimal import Decimal

from ai_quota_guard.config.loader import DEFAULT_CONFIG, PricingConfig


def calculate_cost(tokens_used: int, pricing: PricingConfig = DEFAULT_CONFIG.pricing) -> float:
    """Calculate the cost of a request from its token count.

    Uses Decimal arithmetic so that, for example, 500 tokens at 0.000002
    accrue exactly 0.001 rather than a binary float approximation.

    Args:
        tokens_used: Tokens consumed by the request
        pricing: Pricing constants

    Returns:
        Cost in currency units

    Raises:
        ValueError: If tokens_used is negative
    """
    if tokens_used < 0:
        raise ValueError("tokens_used cannot be negative")

    cost = Decimal(tokens_used) * Decimal(str(pricing.token_cost_factor))
    return float(cost)


def add_cost(total: float, cost: float) -> float:
    """Add an accrued cost to a running total without float drift."""
    return float(Decimal(str(total)) + Decimal(str(cost)))
