"""
SQS order-queue consumer.

Long-polls the order queue, sends one Telegram message per order and
deletes every message it receives, including ones it cannot parse, so a
poison message is dropped instead of redelivered forever.
"""

import asyncio
import json
import logging
from contextlib import AsyncExitStack
from typing import Any, Dict, Optional

import aioboto3
from botocore.config import Config as BotoConfig
from pydantic import ValidationError

from monitoring.metrics import RelayMetrics
from monitoring.telegram_client import TelegramClient
from shared.config import SQSConfig
from shared.models import QueueOrderMessage
from shared.utils import truncate_string

from .message_formatter import format_intent

logger = logging.getLogger(__name__)


class MalformedMessageError(ValueError):
    """Queue message body is not a JSON order object."""


def parse_order_message(body: Optional[str]) -> QueueOrderMessage:
    """
    Parse a queue body into an order record.

    Raises:
        MalformedMessageError: body is not JSON, not an object, or fails validation
    """
    try:
        data = json.loads(body or "")
    except json.JSONDecodeError as e:
        raise MalformedMessageError(f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedMessageError(f"expected a JSON object, got {type(data).__name__}")

    try:
        return QueueOrderMessage.model_validate(data)
    except ValidationError as e:
        raise MalformedMessageError(f"invalid order record: {e}") from e


class SQSOrderConsumer:
    """Continuous long-poll loop over the order queue."""

    def __init__(
        self,
        config: SQSConfig,
        telegram_client: TelegramClient,
        metrics: Optional[RelayMetrics] = None,
        session: Optional[aioboto3.Session] = None,
    ) -> None:
        self.config = config
        self.telegram_client = telegram_client
        self.metrics = metrics
        self.session = session or aioboto3.Session()
        self._boto_config = BotoConfig(
            read_timeout=config.wait_time_seconds + 10,
            retries={"max_attempts": 3, "mode": "standard"},
        )
        self._client: Optional[Any] = None
        self._exit_stack: Optional[AsyncExitStack] = None
        self._running = False

    async def _get_client(self) -> Any:
        if self._client is None:
            self._exit_stack = AsyncExitStack()
            self._client = await self._exit_stack.enter_async_context(
                self.session.client(
                    service_name="sqs",
                    region_name=self.config.region,
                    aws_access_key_id=self.config.access_key_id,
                    aws_secret_access_key=self.config.secret_access_key,
                    config=self._boto_config,
                )
            )
            logger.info("Connected to AWS SQS")
        return self._client

    async def close(self) -> None:
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._client = None
            self._exit_stack = None

    async def run(self) -> None:
        """Poll until ``stop`` is called."""
        self._running = True
        logger.info(f"Polling SQS queue {self.config.queue_url}")
        while self._running:
            try:
                client = await self._get_client()
                await self.poll_once(client)
                delay = self.config.poll_delay
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error polling SQS: {e}")
                delay = self.config.error_backoff

            if self._running:
                await asyncio.sleep(delay)

    def stop(self) -> None:
        self._running = False

    async def poll_once(self, client: Any) -> int:
        """
        Receive one batch and handle each message in order.

        Returns:
            Number of messages received
        """
        response = await client.receive_message(
            QueueUrl=self.config.queue_url,
            MaxNumberOfMessages=self.config.max_messages,
            WaitTimeSeconds=self.config.wait_time_seconds,
            VisibilityTimeout=self.config.visibility_timeout,
        )
        messages = response.get("Messages") or []
        if messages:
            logger.info(f"Received {len(messages)} SQS messages")

        for message in messages:
            await self.handle_message(client, message)

        return len(messages)

    async def handle_message(self, client: Any, message: Dict[str, Any]) -> bool:
        """
        Send one order notification and delete the message.

        The message is deleted whatever happens after it is received.

        Returns:
            True if the body parsed, False if it was discarded as malformed
        """
        body = message.get("Body")
        try:
            order = parse_order_message(body)
        except MalformedMessageError as e:
            logger.error(f"Error parsing SQS message: {e}")
            logger.info(f"Raw message body: {truncate_string(str(body), 1000)}")
            await self._delete(client, message)
            if self.metrics:
                self.metrics.record_queue_message(processed=False)
            return False

        logger.info(
            f"Processing SQS order {order.order_id} ({order.status}) for {order.user_id}"
        )
        try:
            intent = order.to_intent()
            delivered = await self.telegram_client.send_text(format_intent(intent))
            if self.metrics:
                self.metrics.record_notification(intent.kind.value, delivered)
                self.metrics.record_queue_message(processed=True)
        except Exception as e:
            logger.error(
                f"Failed to deliver SQS order {order.order_id}: {e}", exc_info=True
            )
        finally:
            await self._delete(client, message)
        return True

    async def _delete(self, client: Any, message: Dict[str, Any]) -> None:
        try:
            await client.delete_message(
                QueueUrl=self.config.queue_url,
                ReceiptHandle=message.get("ReceiptHandle"),
            )
        except Exception as e:
            logger.error(f"Failed to delete SQS message {message.get('MessageId')}: {e}")
