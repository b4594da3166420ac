"""
Notification Relay source module.

Contains the dedup, milestone and classification core plus the change-feed,
queue and Telegram wiring of the relay.
"""

from .dedup_store import DedupStore
from .event_classifier import EventClassifier
from .event_keys import build_key
from .milestone_tracker import MilestoneTracker

__all__ = ["DedupStore", "EventClassifier", "MilestoneTracker", "build_key"]
