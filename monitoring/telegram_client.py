import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from shared.config import TelegramConfig


@dataclass
class TelegramMessage:
    """Telegram sendMessage payload"""

    text: str
    parse_mode: str = "HTML"
    disable_web_page_preview: bool = True


class TelegramClient:
    """Client for sending notifications via the Telegram Bot API"""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_url: str = "https://api.telegram.org",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self.session: Optional[httpx.AsyncClient] = None
        self._transport = transport

    @classmethod
    def from_config(cls, config: TelegramConfig) -> "TelegramClient":
        return cls(
            bot_token=config.bot_token,
            chat_id=config.chat_id,
            api_url=config.api_url,
            timeout=config.timeout,
        )

    @property
    def base_url(self) -> str:
        return f"{self.api_url}/bot{self.bot_token}"

    async def startup(self):
        """Initialize Telegram client"""
        self.session = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        )

        if await self.test_connection():
            self.logger.info("Telegram client initialized successfully")
        else:
            self.logger.error("Telegram bot token check failed; sends may fail")

    async def shutdown(self):
        """Cleanup Telegram client"""
        if self.session:
            await self.session.aclose()
            self.session = None

    async def test_connection(self) -> bool:
        """Check the bot token with getMe"""
        if self.session is None:
            self.logger.error("Telegram session not initialized")
            return False

        try:
            response = await self.session.get("/getMe")
            body = self._json(response)
            if response.status_code == 200 and body.get("ok"):
                username = body.get("result", {}).get("username")
                self.logger.debug(f"Telegram bot verified: @{username}")
                return True
            self.logger.warning(
                f"Telegram getMe failed: HTTP {response.status_code} - "
                f"{body.get('description', '')}"
            )
            return False
        except Exception as e:
            self.logger.error(f"Telegram connection test failed: {e}")
            return False

    async def send_notification(self, message: TelegramMessage) -> bool:
        """
        Send a message to the configured chat.

        A single attempt is made; failures are logged and reported as False,
        never raised.
        """
        if self.session is None:
            self.logger.warning(
                "Telegram session not available, logging notification instead"
            )
            self.logger.info(f"NOTIFICATION: {message.text}")
            return False

        payload = {
            "chat_id": self.chat_id,
            "text": message.text,
            "parse_mode": message.parse_mode,
            "disable_web_page_preview": message.disable_web_page_preview,
        }

        try:
            response = await self.session.post("/sendMessage", json=payload)
        except Exception as e:
            self.logger.error(f"Failed to send Telegram message: {e}")
            return False

        body = self._json(response)
        if response.status_code == 200 and body.get("ok"):
            self.logger.debug("Telegram message sent successfully")
            return True

        self.logger.error(
            f"Failed to send Telegram message: HTTP {response.status_code} - "
            f"{body.get('description', response.text)}"
        )
        return False

    async def send_text(self, text: str) -> bool:
        """Send HTML text with link previews disabled"""
        return await self.send_notification(TelegramMessage(text=text))

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}
