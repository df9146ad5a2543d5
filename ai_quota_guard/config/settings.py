"""
Runtime settings.

Resolves the database path, metering config file and log level from
the environment.
"""

import os
from dataclasses import dataclass
from typing import Optional

from ai_quota_guard.storage.db import DEFAULT_DB_PATH

from .loader import DEFAULT_CONFIG, MeteringConfig, load_metering_config


@dataclass
class Settings:
    """Process-level settings, overridable by CLI options."""
    db_path: str = DEFAULT_DB_PATH
    # optional YAML file with quota/pricing overrides
    config_path: Optional[str] = None
    log_level: str = "info"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from AI_QUOTA_GUARD_* environment variables.

        Returns:
            Settings with defaults for any variable that is unset
        """
        return cls(
            db_path=os.environ.get("AI_QUOTA_GUARD_DB", DEFAULT_DB_PATH),
            config_path=os.environ.get("AI_QUOTA_GUARD_CONFIG") or None,
            log_level=os.environ.get("AI_QUOTA_GUARD_LOG_LEVEL", "info"),
        )

    def load_metering_config(self) -> MeteringConfig:
        """Load the configured YAML file, or the defaults when none is set.

        Raises:
            ValueError: If the file contains invalid values
        """
        if self.config_path:
            return load_metering_config(self.config_path)
        return DEFAULT_CONFIG
