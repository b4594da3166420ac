"""
Notification Relay for the copy-trading platform.

This service watches database change events and order-queue messages and
sends operational alerts to a Telegram chat when important platform
events occur.
"""

from pathlib import Path

__version__ = "1.0.0"
__description__ = "Change-feed and order-queue notification relay"

# Service metadata
SERVICE_NAME = "notification_relay"
SERVICE_ROOT = Path(__file__).parent

__all__ = [
    "SERVICE_NAME",
    "SERVICE_ROOT",
    "__version__",
    "__description__",
]
