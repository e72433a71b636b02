"""Notification channels — Telegram and WhatsApp delivery."""

from __future__ import annotations

import abc
from html import escape as html_escape
from typing import Any

import aiohttp
import structlog

from routerwatch.core.config import TelegramConfig, WhatsAppConfig
from routerwatch.notify.types import NotificationMessage

logger = structlog.get_logger(__name__)


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    @abc.abstractmethod
    async def send(self, msg: NotificationMessage) -> bool:
        """Send a message. Returns True on success."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class _HttpChannel(NotificationChannel):
    """A channel that is one JSON POST per message.

    Subclasses say where to post and what to send; transport errors and
    non-2xx answers are logged here and reported as ``False``.
    """

    name = "http"

    def __init__(self) -> None:
        self._session: aiohttp.ClientSession | None = None

    @abc.abstractmethod
    def render(self, msg: NotificationMessage) -> str:
        """Message text in the channel's markup."""

    @abc.abstractmethod
    def request(self, text: str) -> tuple[str, dict[str, Any]]:
        """URL and ``session.post`` keyword arguments for *text*."""

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def send(self, msg: NotificationMessage) -> bool:
        url, kwargs = self.request(self.render(msg))
        try:
            async with self._get_session().post(url, **kwargs) as resp:
                if 200 <= resp.status < 300:
                    return True
                body = await resp.text()
                logger.warning(
                    f"{self.name}_send_failed",
                    status=resp.status,
                    body=body[:200],
                    source_event_type=msg.source_event_type,
                )
                return False
        except Exception:
            logger.exception(f"{self.name}_send_error", source_event_type=msg.source_event_type)
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class TelegramChannel(_HttpChannel):
    """Bot API ``sendMessage`` in HTML parse mode, optionally into a forum topic."""

    name = "telegram"

    def __init__(self, config: TelegramConfig) -> None:
        super().__init__()
        self._token = config.bot_token.get_secret_value()
        self._chat_id = config.chat_id
        self._thread_id = config.thread_id

    def render(self, msg: NotificationMessage) -> str:
        parts = [f"<b>[{msg.severity.name}] {html_escape(msg.title)}</b>"]
        if msg.body:
            parts.append(html_escape(msg.body))
        parts.extend(
            f"  <code>{html_escape(k)}</code>: {html_escape(v)}" for k, v in msg.fields.items()
        )
        return "\n".join(parts)

    def request(self, text: str) -> tuple[str, dict[str, Any]]:
        payload: dict[str, str] = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": "HTML",
        }
        if self._thread_id:
            payload["message_thread_id"] = self._thread_id
        return f"https://api.telegram.org/bot{self._token}/sendMessage", {"json": payload}


class WhatsAppChannel(_HttpChannel):
    """Delivers alerts through a WhatsApp HTTP gateway.

    Group chats are addressed with an ``@g.us`` suffix; anything longer than
    a phone number is treated as a group id.
    """

    name = "whatsapp"

    def __init__(self, config: WhatsAppConfig) -> None:
        super().__init__()
        self._base_url = config.base_url.rstrip("/")
        self._to = config.to
        self._api_key = config.api_key.get_secret_value()
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_secs)

    @property
    def recipient(self) -> str:
        if len(self._to) > 15 or "@g.us" in self._to:
            return self._to.removesuffix("@g.us") + "@g.us"
        return self._to

    def render(self, msg: NotificationMessage) -> str:
        lines = [f"*[{msg.severity.name}] {msg.title}*"]
        if msg.body:
            lines.append(msg.body)
        lines.extend(f"{k}: {v}" for k, v in msg.fields.items())
        return "\n".join(lines)

    def request(self, text: str) -> tuple[str, dict[str, Any]]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return f"{self._base_url}/send/message", {
            "json": {"phone": self.recipient, "message": text},
            "headers": headers,
            "timeout": self._timeout,
        }
