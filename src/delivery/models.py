"""Data models for the webhook delivery pipeline."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    DISABLED = "disabled"
    UNAUTHORIZED = "unauthorized"
    INVALID_PAYLOAD = "invalid_payload"
    RENDER_FAILURE = "render_failure"
    DELIVERY_API_ERROR = "delivery_api_error"
    DELIVERY_TRANSPORT_ERROR = "delivery_transport_error"
    INTERNAL_ERROR = "internal_error"


@dataclass
class DeliveryRequest:
    """An inbound trigger call, decoupled from the web framework."""

    public_id: str
    body: bytes = b""
    method: str = "POST"
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, str] = field(default_factory=dict)
    client_ip: str | None = None


@dataclass
class DeliveryResult:
    """What the caller gets back.

    ``raw_body`` holds Telegram's response text verbatim on success; otherwise
    ``body`` is the structured error document.
    """

    status_code: int
    request_id: str
    body: dict[str, Any] | None = None
    raw_body: str | None = None
    failure: FailureKind | None = None
    log_written: bool = False

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def error(
        cls,
        status_code: int,
        request_id: str,
        failure: FailureKind,
        message: str,
        details: list[str] | None = None,
    ) -> DeliveryResult:
        body: dict[str, Any] = {"error": message}
        if details:
            body["details"] = details
        return cls(status_code=status_code, request_id=request_id, body=body, failure=failure)

    def response_text(self) -> str:
        """Body as sent over the wire."""
        if self.raw_body is not None:
            return self.raw_body
        return json.dumps(self.body or {})
