"""
Shared models and utilities for the notification relay.

This package provides the configuration, data models, logging setup and
helpers used by every component of the relay.
"""

from .config import Config, ConfigurationError, load_config
from .models import (
    ChangeEvent,
    ChangeOperation,
    NotificationIntent,
    NotificationKind,
    QueueOrderMessage,
    TrackedTable,
)

__version__ = "1.0.0"

__all__ = [
    "ChangeEvent",
    "ChangeOperation",
    "NotificationIntent",
    "NotificationKind",
    "QueueOrderMessage",
    "TrackedTable",
    "Config",
    "ConfigurationError",
    "load_config",
]
