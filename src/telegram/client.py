"""Telegram Bot API client for sendMessage and getMe.

Every call is a single attempt with a bounded timeout. All outcomes, including
transport failures, come back as a DeliveryOutcome; nothing is raised.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from src.models import ParseMode

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.telegram.org"
DEFAULT_TIMEOUT_SECONDS = 30.0


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    API_ERROR = "api_error"
    NETWORK = "network"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of one Telegram API call."""

    kind: OutcomeKind
    status_code: int
    body: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def is_transport_error(self) -> bool:
        return self.kind in (OutcomeKind.NETWORK, OutcomeKind.TIMEOUT)

    @classmethod
    def success(cls, body: str, status_code: int = 200) -> DeliveryOutcome:
        return cls(OutcomeKind.SUCCESS, status_code, body=body)

    @classmethod
    def api_error(cls, status_code: int, body: str, error: str | None = None) -> DeliveryOutcome:
        return cls(
            OutcomeKind.API_ERROR,
            status_code,
            body=body,
            error=error or f"Telegram API returned error: {body}",
        )

    @classmethod
    def network(cls, error: str) -> DeliveryOutcome:
        return cls(OutcomeKind.NETWORK, 502, error=error)

    @classmethod
    def timeout(cls, error: str) -> DeliveryOutcome:
        return cls(OutcomeKind.TIMEOUT, 504, error=error)


def _token_suffix(token: str) -> str:
    return token[-4:] if len(token) >= 4 else "****"


def build_send_payload(
    chat_id: str,
    text: str,
    parse_mode: ParseMode | str | None = None,
    disable_web_page_preview: bool | None = None,
    disable_notification: bool | None = None,
    topic_id: str | None = None,
) -> dict[str, Any]:
    """Build the sendMessage JSON body, leaving out fields that have no value."""
    if isinstance(parse_mode, ParseMode):
        parse_mode = parse_mode.value
    payload: dict[str, Any] = {
        "chat_id": chat_id,
        "text": text,
        "parse_mode": parse_mode,
        "disable_web_page_preview": disable_web_page_preview,
        "disable_notification": disable_notification,
        "message_thread_id": topic_id or None,
    }
    return {k: v for k, v in payload.items() if v is not None}


class TelegramClient:
    """Thin async wrapper over the two Bot API methods telehook uses."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        api_base: str = DEFAULT_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._api_base = api_base.rstrip("/")
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        # TLS verification stays on for every call.
        return httpx.AsyncClient(verify=True, timeout=self._timeout, transport=self._transport)

    def _url(self, token: str, method: str) -> str:
        return f"{self._api_base}/bot{token}/{method}"

    async def send_message(
        self,
        bot_token: str,
        chat_id: str,
        text: str,
        parse_mode: ParseMode | str | None = None,
        disable_web_page_preview: bool | None = None,
        disable_notification: bool | None = None,
        topic_id: str | None = None,
    ) -> DeliveryOutcome:
        payload = build_send_payload(
            chat_id, text, parse_mode,
            disable_web_page_preview, disable_notification, topic_id,
        )
        logger.debug(
            "Sending message to chat %s via bot ...%s (length %d)",
            chat_id, _token_suffix(bot_token), len(text),
        )
        try:
            async with self._client() as client:
                resp = await client.post(self._url(bot_token, "sendMessage"), json=payload)
        except httpx.TimeoutException:
            logger.error("Timed out sending Telegram message to chat %s", chat_id)
            return DeliveryOutcome.timeout("Request timeout while sending Telegram message")
        except httpx.HTTPError as exc:
            logger.error("HTTP request failed sending Telegram message to chat %s: %s", chat_id, exc)
            return DeliveryOutcome.network("HTTP request failed while sending Telegram message")

        if resp.is_success:
            logger.debug("Message delivered to chat %s", chat_id)
            return DeliveryOutcome.success(resp.text, resp.status_code)

        logger.error(
            "Telegram API error for chat %s. Status: %d, body: %s",
            chat_id, resp.status_code, resp.text,
        )
        return DeliveryOutcome.api_error(resp.status_code, resp.text)

    async def test_connection(self, bot_token: str) -> DeliveryOutcome:
        """Call getMe to check that a bot token is valid."""
        suffix = _token_suffix(bot_token)
        try:
            async with self._client() as client:
                resp = await client.get(self._url(bot_token, "getMe"))
        except httpx.TimeoutException:
            logger.error("Timed out testing bot ...%s", suffix)
            return DeliveryOutcome.timeout("Request timeout during Telegram bot connection test")
        except httpx.HTTPError as exc:
            logger.error("HTTP request failed testing bot ...%s: %s", suffix, exc)
            return DeliveryOutcome.network("HTTP request failed during Telegram bot connection test")

        if not resp.is_success:
            logger.error("Connection test failed for bot ...%s. Status: %d", suffix, resp.status_code)
            return DeliveryOutcome.api_error(
                resp.status_code, resp.text,
                f"Telegram bot connection test failed: {resp.text}",
            )

        try:
            data = resp.json()
        except json.JSONDecodeError:
            data = {}
        if not isinstance(data, dict) or data.get("ok") is not True:
            logger.error("Telegram API returned ok=false for bot ...%s", suffix)
            return DeliveryOutcome.api_error(resp.status_code, resp.text, "Telegram API returned ok=false")

        username = (data.get("result") or {}).get("username", "unknown")
        logger.info("Bot connection test succeeded for @%s", username)
        return DeliveryOutcome.success(resp.text, resp.status_code)
