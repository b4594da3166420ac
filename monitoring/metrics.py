import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server

logger = logging.getLogger(__name__)


class RelayMetrics:
    """Prometheus metrics for the notification relay"""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # Inbound
        self.change_events_total = Counter(
            "relay_change_events_total",
            "Change events received from the change-feed",
            ["table", "operation"],
            registry=self.registry,
        )

        self.duplicates_suppressed_total = Counter(
            "relay_duplicates_suppressed_total",
            "Change events dropped as duplicates within the dedup window",
            ["table"],
            registry=self.registry,
        )

        self.queue_messages_total = Counter(
            "relay_queue_messages_total",
            "Queue messages handled",
            ["result"],  # processed | discarded
            registry=self.registry,
        )

        # Outbound
        self.notifications_total = Counter(
            "relay_notifications_total",
            "Notifications handed to the chat sink",
            ["kind", "delivered"],
            registry=self.registry,
        )

        # State
        self.dedup_entries = Gauge(
            "relay_dedup_entries",
            "Keys held by the dedup store",
            registry=self.registry,
        )

        self.milestone_entries = Gauge(
            "relay_milestone_entries",
            "High-water marks held by the milestone tracker",
            registry=self.registry,
        )

    def record_change_event(self, table: str, operation: str) -> None:
        self.change_events_total.labels(table=table, operation=operation).inc()

    def record_duplicate(self, table: str) -> None:
        self.duplicates_suppressed_total.labels(table=table).inc()

    def record_queue_message(self, processed: bool) -> None:
        result = "processed" if processed else "discarded"
        self.queue_messages_total.labels(result=result).inc()

    def record_notification(self, kind: str, delivered: bool) -> None:
        self.notifications_total.labels(
            kind=kind, delivered="true" if delivered else "false"
        ).inc()

    def update_store_sizes(self, dedup_size: int, milestone_size: int) -> None:
        self.dedup_entries.set(dedup_size)
        self.milestone_entries.set(milestone_size)

    def start_server(self, port: int) -> None:
        """Expose the registry over HTTP"""
        start_http_server(port, registry=self.registry)
        logger.info(f"Metrics server listening on port {port}")
