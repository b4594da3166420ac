"""
Change-event processing pipeline: key, dedup, classify, format, send.
"""

import logging
from typing import List, Optional

from monitoring.metrics import RelayMetrics
from monitoring.telegram_client import TelegramClient
from shared.logging_config import get_audit_logger
from shared.models import ChangeEvent, NotificationIntent

from .dedup_store import DedupStore
from .event_classifier import EventClassifier
from .event_keys import key_for_event
from .message_formatter import format_intent

logger = logging.getLogger(__name__)


class ChangeEventProcessor:
    """
    Runs change events through dedup and classification and delivers the
    resulting messages in order.

    The bookkeeping part (``process``) is synchronous; only the sends in
    ``handle`` yield to the event loop.
    """

    def __init__(
        self,
        dedup_store: DedupStore,
        classifier: EventClassifier,
        telegram_client: TelegramClient,
        metrics: Optional[RelayMetrics] = None,
    ) -> None:
        self.dedup_store = dedup_store
        self.classifier = classifier
        self.telegram_client = telegram_client
        self.metrics = metrics
        self.audit = get_audit_logger()

    def process(self, event: ChangeEvent) -> List[NotificationIntent]:
        """Return the intents for ``event``, or none if it is a duplicate."""
        if self.metrics:
            self.metrics.record_change_event(event.table.value, event.operation.value)

        key = key_for_event(event)
        if self.dedup_store.is_duplicate(key):
            logger.debug(f"Duplicate change event suppressed: {key}")
            if self.metrics:
                self.metrics.record_duplicate(event.table.value)
            return []

        intents = self.classifier.classify(event)
        logger.debug(f"{key} -> {[intent.kind.value for intent in intents]}")
        return intents

    async def handle(self, event: ChangeEvent) -> int:
        """
        Process an event and send its messages.

        Returns:
            Number of messages the chat sink accepted
        """
        delivered = 0
        for intent in self.process(event):
            try:
                text = format_intent(intent)
            except Exception as e:
                logger.error(f"Failed to format {intent.kind.value} notification: {e}")
                continue

            logger.info(
                f"{event.table.value} {event.operation.value} ({intent.kind.value}) "
                f"for {intent.subject_id}"
            )
            ok = await self.telegram_client.send_text(text)
            if ok:
                delivered += 1

            self.audit.info(
                "notification_dispatched",
                table=event.table.value,
                operation=event.operation.value,
                kind=intent.kind.value,
                subject=intent.subject_id,
                delivered=ok,
            )
            if self.metrics:
                self.metrics.record_notification(intent.kind.value, ok)

        return delivered
