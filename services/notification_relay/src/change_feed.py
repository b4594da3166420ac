"""
Supabase Realtime change-feed adapter.

Subscribes one channel to every (table, operation) pair in
``SUBSCRIPTIONS``, normalizes the realtime payloads into ``ChangeEvent``s
and hands them to a single worker through an ``asyncio.Queue`` so events
are processed one at a time in arrival order.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from supabase import AsyncClient, acreate_client

from shared.config import SupabaseConfig
from shared.models import ChangeEvent, ChangeOperation, TrackedTable
from shared.utils import truncate_string, utc_now

logger = logging.getLogger(__name__)

CHANNEL_NAME = "notification-relay"
TAP_CHANNEL_NAME = "notification-relay-tap"

SUBSCRIPTIONS: List[Tuple[TrackedTable, ChangeOperation]] = [
    (TrackedTable.USERS, ChangeOperation.INSERT),
    (TrackedTable.USERS, ChangeOperation.UPDATE),
    (TrackedTable.AUTO_TRADE, ChangeOperation.INSERT),
    (TrackedTable.AUTO_TRADE, ChangeOperation.UPDATE),
    (TrackedTable.COPY_WALLETS, ChangeOperation.INSERT),
    (TrackedTable.COPY_WALLETS, ChangeOperation.UPDATE),
    (TrackedTable.MONTHLY_ACTIVE_USERS, ChangeOperation.INSERT),
]

EventHandler = Callable[[ChangeEvent], Awaitable[Any]]


def normalize_payload(
    payload: Mapping[str, Any], received_at: Optional[datetime] = None
) -> Optional[ChangeEvent]:
    """
    Convert a realtime payload into a ChangeEvent.

    Accepts the server shape ``{"data": {"type", "table", "record",
    "old_record"}}`` as well as the flattened ``{"eventType", "table",
    "new", "old"}`` shape.

    Returns:
        The event, or None for unknown tables, unsupported operations or a
        missing row image
    """
    data = payload.get("data") if isinstance(payload.get("data"), Mapping) else payload

    table_name = data.get("table")
    operation_name = data.get("type") or data.get("eventType")
    after = data.get("record") if "record" in data else data.get("new")
    before = data.get("old_record") if "old_record" in data else data.get("old")

    try:
        table = TrackedTable(table_name)
        operation = ChangeOperation(str(operation_name).upper())
    except ValueError:
        logger.debug(f"Ignoring change for {table_name} {operation_name}")
        return None

    if not isinstance(after, Mapping) or not after:
        logger.warning(f"{table.value} {operation.value} payload has no row image, ignoring")
        return None

    return ChangeEvent(
        table=table,
        operation=operation,
        before=dict(before) if isinstance(before, Mapping) else None,
        after=dict(after),
        received_at=received_at or utc_now(),
    )


def _state_name(state: Any) -> str:
    return str(getattr(state, "value", state))


class ChangeFeedSubscriber:
    """Owns the realtime channel and the worker that drains it."""

    def __init__(
        self,
        config: SupabaseConfig,
        handler: EventHandler,
        client_factory: Callable[[str, str], Awaitable[AsyncClient]] = acreate_client,
    ) -> None:
        self.config = config
        self.handler = handler
        self._client_factory = client_factory
        self._client: Optional[AsyncClient] = None
        self._channel: Any = None
        self._queue: "asyncio.Queue[ChangeEvent]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._running = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def on_change(self, payload: Dict[str, Any]) -> None:
        """Realtime callback: normalize and enqueue."""
        try:
            event = normalize_payload(payload)
        except Exception as e:
            logger.error(f"Failed to normalize change payload: {e}")
            logger.debug(f"Raw payload: {truncate_string(str(payload), 500)}")
            return
        if event is not None:
            self._queue.put_nowait(event)

    def on_status(self, state: Any, error: Optional[Exception] = None) -> None:
        """Realtime subscription status callback; logs only."""
        name = _state_name(state)
        if name == "SUBSCRIBED":
            logger.info(f"Subscribed to {len(SUBSCRIPTIONS)} change streams on {self.config.schema_name}")
        elif name == "CHANNEL_ERROR":
            logger.error(f"Change-feed channel error: {error}")
        elif name == "TIMED_OUT":
            logger.error("Change-feed subscription timed out")
        elif name == "CLOSED":
            logger.warning("Change-feed channel closed")
        else:
            logger.info(f"Change-feed status: {name}")

    async def start(self) -> None:
        """Connect, register every subscription on one channel and start the worker."""
        self._running = True
        self._worker = asyncio.create_task(self._drain())

        logger.info("Connecting to Supabase...")
        self._client = await self._client_factory(self.config.url, self.config.key)
        self._channel = self._client.channel(CHANNEL_NAME)

        for table, operation in SUBSCRIPTIONS:
            self._channel.on_postgres_changes(
                operation.value,
                schema=self.config.schema_name,
                table=table.value,
                callback=self.on_change,
            )
            logger.debug(f"Registered {table.value} {operation.value}")

        await self._channel.subscribe(self.on_status)

    async def start_tap(self) -> None:
        """Log every change on the schema without processing it."""
        self._running = True
        logger.info("Connecting to Supabase (tap mode)...")
        self._client = await self._client_factory(self.config.url, self.config.key)
        self._channel = self._client.channel(TAP_CHANNEL_NAME)
        self._channel.on_postgres_changes(
            "*", schema=self.config.schema_name, callback=self._log_payload
        )
        await self._channel.subscribe(self.on_status)

    @staticmethod
    def _log_payload(payload: Dict[str, Any]) -> None:
        logger.info(f"Change received: {payload}")

    async def _drain(self) -> None:
        while self._running:
            event = await self._queue.get()
            try:
                await self.handler(event)
            except Exception as e:
                logger.error(
                    f"Error handling {event.table.value} {event.operation.value}: {e}",
                    exc_info=True,
                )
            finally:
                self._queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        self._running = False

        if self._channel is not None and self._client is not None:
            try:
                await self._client.remove_channel(self._channel)
            except Exception as e:
                logger.warning(f"Failed to remove change-feed channel: {e}")
            self._channel = None

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        logger.info("Change-feed subscriber stopped")
