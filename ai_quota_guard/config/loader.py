"""
Configuration management and loading.

Handles the economic constants behind quotas and cost accrual.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet

import yaml

from ai_quota_guard.storage.models import AccountRole


@dataclass(frozen=True)
class QuotaConfig:
    """Constants used to derive daily request limits."""
    free_daily_limit: int = 10
    paid_floor_multiplier: int = 3
    days_per_month: int = 30
    tokens_per_currency_unit: int = 500_000
    # share of the subscription value granted as daily token budget
    paid_value_factor: float = 0.5
    average_tokens_per_request: int = 1000

    def __post_init__(self):
        """Validate quota constants are positive."""
        for name in (
            "free_daily_limit",
            "paid_floor_multiplier",
            "days_per_month",
            "tokens_per_currency_unit",
            "paid_value_factor",
            "average_tokens_per_request",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

    @property
    def paid_floor(self) -> int:
        """Lowest daily limit a paid account can have."""
        return self.free_daily_limit * self.paid_floor_multiplier


@dataclass(frozen=True)
class PricingConfig:
    """Cost accrual constants."""
    token_cost_factor: float = 0.000002

    def __post_init__(self):
        if self.token_cost_factor <= 0:
            raise ValueError("token_cost_factor must be > 0")


@dataclass(frozen=True)
class MeteringConfig:
    """Complete metering configuration."""
    quota: QuotaConfig = field(default_factory=QuotaConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    protected_roles: FrozenSet[AccountRole] = frozenset({AccountRole.SUPER_ADMIN})

    def is_protected(self, role: AccountRole) -> bool:
        """Whether accounts with this role are shielded from admin actions."""
        return role in self.protected_roles


DEFAULT_CONFIG = MeteringConfig()


def load_metering_config(path: str) -> MeteringConfig:
    """Load and validate metering configuration from YAML file.

    Strict validation ensures a typo cannot silently fall back to a
    default and hand out the wrong quota. Sections that are left out
    entirely use the built-in defaults.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated MeteringConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Metering config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'quota', 'pricing', 'accounts'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    quota = QuotaConfig(**_parse_numbers(
        raw_config.get('quota', {}),
        'quota',
        {
            'free_daily_limit': int,
            'paid_floor_multiplier': int,
            'days_per_month': int,
            'tokens_per_currency_unit': int,
            'paid_value_factor': float,
            'average_tokens_per_request': int,
        },
    ))
    pricing = PricingConfig(**_parse_numbers(
        raw_config.get('pricing', {}),
        'pricing',
        {'token_cost_factor': float},
    ))

    accounts_data = raw_config.get('accounts', {})
    if not isinstance(accounts_data, dict):
        raise ValueError("'accounts' must be a dictionary")
    unknown_account_keys = set(accounts_data.keys()) - {'protected_roles'}
    if unknown_account_keys:
        raise ValueError(f"Unknown accounts keys: {unknown_account_keys}")

    protected_roles = DEFAULT_CONFIG.protected_roles
    if 'protected_roles' in accounts_data:
        protected_roles = _parse_roles(accounts_data['protected_roles'])

    return MeteringConfig(
        quota=quota,
        pricing=pricing,
        protected_roles=protected_roles
    )


def _parse_numbers(data: Any, path: str, schema: Dict[str, type]) -> Dict[str, Any]:
    """Parse and validate a section of positive numeric settings.

    Args:
        data: Section data
        path: Path for error messages
        schema: Allowed keys mapped to the type they are converted to

    Returns:
        Keyword arguments for the section's config dataclass

    Raises:
        ValueError: If the section is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"'{path}' must be a dictionary")

    unknown_keys = set(data.keys()) - set(schema)
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    parsed = {}
    for key, value in data.items():
        # bool is an int subclass; reject it explicitly
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"'{key}' in {path} must be a number")
        if value <= 0:
            raise ValueError(f"'{key}' in {path} must be > 0")
        if schema[key] is int and value != int(value):
            raise ValueError(f"'{key}' in {path} must be a whole number")
        parsed[key] = schema[key](value)
    return parsed


def _parse_roles(data: Any) -> FrozenSet[AccountRole]:
    if not isinstance(data, list):
        raise ValueError("'protected_roles' must be a list")

    roles = set()
    for value in data:
        try:
            roles.add(AccountRole(str(value).lower()))
        except ValueError:
            valid_roles = [role.value for role in AccountRole]
            raise ValueError(f"'protected_roles' entries must be one of: {valid_roles}")
    return frozenset(roles)
