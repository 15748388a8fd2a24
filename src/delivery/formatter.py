"""Turns a webhook's template plus an inbound payload into Telegram-ready text."""

from __future__ import annotations

import logging
from typing import Any

from src.delivery.renderer import RenderResult, TemplateRenderer
from src.escaping import escape_for_parse_mode
from src.models import WebhookConfig

logger = logging.getLogger(__name__)


def empty_message_placeholder(webhook_name: str) -> str:
    return (
        "No data available to display, please check the provided template "
        f"and payload for webhook '{webhook_name}'."
    )


class MessageFormatter:
    """Render, normalize and escape a message for one webhook."""

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self._renderer = renderer or TemplateRenderer()

    def format(self, webhook: WebhookConfig, payload: Any) -> RenderResult:
        rendered = self._renderer.render(webhook.message_template, payload)
        if not rendered.ok:
            return rendered

        text = rendered.text or ""
        if not text.strip():
            logger.warning("Template for webhook %s rendered empty text", webhook.uuid)
            text = empty_message_placeholder(webhook.name)

        text = text.replace("\\n", "\n")
        escaped = escape_for_parse_mode(text, webhook.parse_mode) or ""
        logger.debug(
            "Formatted message for webhook %s (%s), length %d",
            webhook.uuid, webhook.parse_mode.value, len(escaped),
        )
        return RenderResult(text=escaped)
