from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from monitoring.telegram_client import TelegramClient
from services.notification_relay.src.dedup_store import DedupStore
from services.notification_relay.src.event_classifier import EventClassifier
from services.notification_relay.src.milestone_tracker import MilestoneTracker
from shared.models import ChangeEvent, ChangeOperation, TrackedTable


class FakeClock:
    """Manually advanced monotonic clock for the stores"""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dedup_store(clock: FakeClock) -> DedupStore:
    return DedupStore(retention_seconds=300, clock=clock)


@pytest.fixture
def milestone_tracker(clock: FakeClock) -> MilestoneTracker:
    return MilestoneTracker(retention_seconds=3600, clock=clock)


@pytest.fixture
def classifier(milestone_tracker: MilestoneTracker) -> EventClassifier:
    return EventClassifier(milestone_tracker)


@pytest.fixture
def mock_telegram() -> Mock:
    """Telegram client whose sends always succeed"""
    client = Mock(spec=TelegramClient)
    client.send_text = AsyncMock(return_value=True)
    return client


@pytest.fixture
def user_row() -> Dict[str, Any]:
    """Users row as delivered by the change-feed"""
    return {
        "id": 42,
        "telegram_username": "alice",
        "wallet_address": "0xabc",
        "amount_deposited": 100,
        "total_pnl": 0,
        "total_volume": 0,
        "txns_executed": 0,
        "markets_traded": 0,
        "is_copytrading_enabled": False,
        "fees_total": 0,
        "referral_code": None,
        "created_at": "2024-05-01T10:00:00+00:00",
        "updated_at": "2024-05-01T10:00:00+00:00",
    }


@pytest.fixture
def make_event() -> Callable[..., ChangeEvent]:
    """Factory for change events with a fixed arrival time"""

    def _make(
        table: TrackedTable,
        operation: ChangeOperation,
        after: Dict[str, Any],
        before: Optional[Dict[str, Any]] = None,
        received_at: Optional[datetime] = None,
    ) -> ChangeEvent:
        return ChangeEvent(
            table=table,
            operation=operation,
            before=before,
            after=after,
            received_at=received_at or datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc),
        )

    return _make
