"""Runtime configuration read from TELEHOOK_* environment variables."""

from __future__ import annotations

import logging
import os

from pydantic import BaseModel, Field, field_validator

from src.telegram.client import DEFAULT_API_BASE, DEFAULT_TIMEOUT_SECONDS

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


class Settings(BaseModel):
    db_path: str = "data/telehook.db"
    audit_log_path: str | None = None
    telegram_timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0, le=120)
    telegram_api_base: str = DEFAULT_API_BASE
    enable_webhook_logging: bool = True
    disabled_status_code: int = Field(default=400, ge=400, le=599)
    log_disabled_requests: bool = True
    log_level: str = "INFO"
    log_retention_days: int = Field(default=0, ge=0)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            db_path=os.environ.get("TELEHOOK_DB_PATH", "data/telehook.db"),
            audit_log_path=os.environ.get("TELEHOOK_AUDIT_LOG_PATH") or None,
            telegram_timeout=float(
                os.environ.get("TELEHOOK_TELEGRAM_TIMEOUT", str(DEFAULT_TIMEOUT_SECONDS)),
            ),
            telegram_api_base=os.environ.get("TELEHOOK_TELEGRAM_API_BASE", DEFAULT_API_BASE),
            enable_webhook_logging=_env_bool("TELEHOOK_ENABLE_WEBHOOK_LOGGING", True),
            disabled_status_code=int(os.environ.get("TELEHOOK_DISABLED_STATUS_CODE", "400")),
            log_disabled_requests=_env_bool("TELEHOOK_LOG_DISABLED_REQUESTS", True),
            log_level=os.environ.get("TELEHOOK_LOG_LEVEL", "INFO"),
            log_retention_days=int(os.environ.get("TELEHOOK_LOG_RETENTION_DAYS", "0")),
        )


def configure_logging(level: str = "INFO") -> None:
    """Set up root logging once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    else:
        root.setLevel(level.upper())
    # httpx logs full request URLs, which contain bot tokens.
    logging.getLogger("httpx").setLevel(logging.WARNING)
