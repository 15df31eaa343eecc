# src/multifetch/core/config.py
"""
Configuration schema and loading for the fetch scheduler.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator


class SchedulerConfig(BaseModel):
    """Scheduler configuration.

    Attributes:
        max_concurrent: Maximum transfers admitted to the transport at once.
            Values below 1 are clamped to 1 rather than rejected.
        parse_headers: Tokenize response headers into a mapping (True) or
            leave them as raw header text (False)
        auto_close_handles: Close transport handles once their result is
            produced (True) or leave that to the caller (False)
        timeout_seconds: Default request timeout for the built-in httpx transport
        follow_redirects: Whether the built-in httpx transport follows redirects

    Example YAML:
        max_concurrent: 8
        parse_headers: true
        auto_close_handles: true
        timeout_seconds: 15
    """

    model_config = {"frozen": True, "extra": "forbid"}

    max_concurrent: int = Field(default=10, description="Maximum concurrent transfers (clamped to >= 1)")
    parse_headers: bool = Field(default=True, description="Parse response headers into a mapping")
    auto_close_handles: bool = Field(default=True, description="Close handles after their result is produced")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Default request timeout in seconds")
    follow_redirects: bool = Field(default=False, description="Follow HTTP redirects")

    @field_validator("max_concurrent")
    @classmethod
    def _clamp_max_concurrent(cls, v: int) -> int:
        """Clamp to at least one concurrent transfer."""
        return max(1, v)


def load_settings(config_path: Path) -> SchedulerConfig:
    """Load scheduler settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (MULTIFETCH_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated SchedulerConfig instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Explicit check for file existence (Dynaconf silently accepts missing files)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="MULTIFETCH",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; convert to lowercase for Pydantic
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config: dict[str, Any] = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}

    return SchedulerConfig(**raw_config)
