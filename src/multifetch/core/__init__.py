# src/multifetch/core/__init__.py
"""Core infrastructure: configuration and logging."""

from multifetch.core.config import SchedulerConfig, load_settings
from multifetch.core.logging import configure_logging, get_logger

__all__ = [
    "SchedulerConfig",
    "configure_logging",
    "get_logger",
    "load_settings",
]
