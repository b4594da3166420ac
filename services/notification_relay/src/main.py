"""
Notification Relay Service.

This service listens to database change events from Supabase Realtime and
order messages from an SQS queue, and forwards human-readable alerts to a
Telegram chat.
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from monitoring.metrics import RelayMetrics
from monitoring.telegram_client import TelegramClient
from shared.config import ALL_SECTIONS, Config, ConfigurationError, load_config
from shared.logging_config import setup_logging

from .change_feed import ChangeFeedSubscriber
from .dedup_store import DedupStore
from .event_classifier import EventClassifier
from .event_processor import ChangeEventProcessor
from .milestone_tracker import MilestoneTracker
from .queue_consumer import SQSOrderConsumer

logger = logging.getLogger(__name__)

SERVICE_NAME = "notification_relay"


class NotificationRelayService:
    """
    Relays change-feed events and queue orders to Telegram.

    Two sources run side by side: the change-feed subscription (deduplicated
    and classified) and the SQS poll loop (formatted and sent directly). A
    scheduler job sweeps expired dedup keys and milestone marks.
    """

    def __init__(self, config: Config, tap: bool = False) -> None:
        self.config = config
        self.tap = tap
        relay_config = config.relay

        self.dedup_store = DedupStore(relay_config.dedup_window_seconds)
        self.milestone_tracker = MilestoneTracker(relay_config.milestone_window_seconds)
        self.sweep_interval = relay_config.sweep_interval_seconds

        self.metrics = RelayMetrics()
        self.telegram_client: Optional[TelegramClient] = None
        self.processor: Optional[ChangeEventProcessor] = None
        self.subscriber: Optional[ChangeFeedSubscriber] = None
        self.consumer: Optional[SQSOrderConsumer] = None
        self.scheduler: Optional[AsyncIOScheduler] = None

        self._running = False
        self._stopped = asyncio.Event()
        self._tasks: Set[asyncio.Task] = set()

    async def initialize(self) -> None:
        """Initialize all service components."""
        try:
            logger.info("Initializing Notification Relay...")

            if self.tap:
                self.subscriber = ChangeFeedSubscriber(self.config.supabase, self._ignore)
                logger.info("Tap mode: change events will be logged, not sent")
                return

            self.telegram_client = TelegramClient.from_config(self.config.telegram)
            await self.telegram_client.startup()

            classifier = EventClassifier(self.milestone_tracker)
            self.processor = ChangeEventProcessor(
                self.dedup_store, classifier, self.telegram_client, self.metrics
            )
            self.subscriber = ChangeFeedSubscriber(
                self.config.supabase, self.processor.handle
            )
            self.consumer = SQSOrderConsumer(
                self.config.sqs, self.telegram_client, self.metrics
            )

            self.scheduler = AsyncIOScheduler()
            self.scheduler.add_job(
                self.sweep_state,
                IntervalTrigger(seconds=self.sweep_interval),
                id="sweep_relay_state",
                name="Sweep dedup keys and milestone marks",
                max_instances=1,
                coalesce=True,
            )

            metrics_config = self.config.metrics
            if metrics_config.enabled:
                self.metrics.start_server(metrics_config.port)

            logger.info("Notification Relay initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize service: {e}")
            raise

    @staticmethod
    async def _ignore(event: Any) -> None:
        return None

    def sweep_state(self) -> None:
        """Drop expired dedup keys and milestone marks."""
        removed_keys = self.dedup_store.sweep()
        removed_marks = self.milestone_tracker.sweep()
        self.metrics.update_store_sizes(len(self.dedup_store), len(self.milestone_tracker))
        logger.debug(
            f"Sweep removed {removed_keys} dedup keys and {removed_marks} milestone marks "
            f"({len(self.dedup_store)}/{len(self.milestone_tracker)} remain)"
        )

    async def start(self) -> None:
        """Start both sources and wait until shutdown."""
        self._running = True
        logger.info("Starting Notification Relay...")

        if self.subscriber is None:
            raise RuntimeError("Service not initialized")

        if self.tap:
            await self.subscriber.start_tap()
        else:
            if self.scheduler:
                self.scheduler.start()
            if self.consumer:
                consumer_task = asyncio.create_task(self.consumer.run())
                self._tasks.add(consumer_task)
                consumer_task.add_done_callback(self._tasks.discard)
            await self.subscriber.start()

        logger.info("Relay is running and listening for events...")
        await self._stopped.wait()

    async def shutdown(self) -> None:
        """Shutdown the relay. Safe to call more than once."""
        if self._stopped.is_set():
            return

        logger.info("Shutting down Notification Relay...")
        self._running = False

        try:
            if self.consumer:
                self.consumer.stop()

            if self.scheduler and self.scheduler.running:
                self.scheduler.shutdown(wait=False)

            if self.subscriber:
                await self.subscriber.stop()

            for task in list(self._tasks):
                task.cancel()
            if self._tasks:
                await asyncio.gather(*self._tasks, return_exceptions=True)

            if self.consumer:
                await self.consumer.close()

            if self.telegram_client:
                await self.telegram_client.shutdown()

            logger.info("Notification Relay shutdown complete")

        except Exception as e:
            logger.error(f"Error during shutdown: {e}")
        finally:
            self._stopped.set()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="notification-relay",
        description="Relay database change events and queue orders to Telegram",
    )
    parser.add_argument(
        "--tap",
        action="store_true",
        help="log every change on the schema without sending anything",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="override LOG_LEVEL",
    )
    return parser.parse_args(argv)


async def main(config: Config, tap: bool = False) -> None:
    """Main entry point for the relay."""
    service = NotificationRelayService(config, tap=tap)

    def signal_handler(sig: int, frame: Any) -> None:
        logger.info(f"Received signal {sig}")
        asyncio.create_task(service.shutdown())

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        await service.initialize()
        await service.start()
    except Exception as e:
        logger.error(f"Service error: {e}", exc_info=True)
    finally:
        await service.shutdown()


def run(argv: Optional[List[str]] = None) -> None:
    """Console entry point: validate configuration, then run until stopped."""
    args = parse_args(argv)
    sections = ("supabase", "logging") if args.tap else ALL_SECTIONS

    try:
        config = load_config(sections)
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.critical(f"Missing or invalid configuration, exiting: {e}")
        sys.exit(1)

    setup_logging(
        SERVICE_NAME,
        config.logging,
        environment=config.environment,
        log_level=args.log_level,
    )
    asyncio.run(main(config, tap=args.tap))


if __name__ == "__main__":
    run()
