"""Click CLI for managing bots, webhooks, notifications, stats and logs."""

from __future__ import annotations

import asyncio
import json
import sys

import click

from src.config import Settings, configure_logging
from src.delivery.formatter import MessageFormatter
from src.delivery.notifier import FailureNotifier
from src.models import BotConfig, NotificationSettings, ParseMode, WebhookConfig
from src.storage.db import TelehookDB
from src.storage.logs import WebhookLogRepository
from src.storage.settings import SettingsRepository
from src.storage.stats import WebhookStatRecorder
from src.storage.webhooks import WebhookConfigError, WebhookRepository
from src.telegram.client import TelegramClient

_PARSE_MODES = click.Choice([m.value for m in ParseMode], case_sensitive=False)


def _mask(token: str | None) -> str | None:
    if not token:
        return token
    return f"...{token[-4:]}"


def _bot_json(bot: BotConfig) -> dict[str, object]:
    return {
        "id": bot.id,
        "name": bot.name,
        "bot_token": _mask(bot.bot_token),
        "chat_id": bot.chat_id,
        "has_passed_test": bot.has_passed_test,
    }


def _webhook_json(webhook: WebhookConfig) -> dict[str, object]:
    return {
        "id": webhook.id,
        "uuid": webhook.uuid,
        "name": webhook.name,
        "bot_id": webhook.bot.id,
        "parse_mode": webhook.parse_mode.value,
        "is_protected": webhook.is_protected,
        "is_disabled": webhook.is_disabled,
        "trigger_path": f"/api/trigger/{webhook.uuid}",
    }


def _telegram_client() -> TelegramClient:
    settings = Settings.from_env()
    return TelegramClient(timeout=settings.telegram_timeout, api_base=settings.telegram_api_base)


@click.group()
@click.option("--db", default="data/telehook.db", envvar="TELEHOOK_DB_PATH", help="Database path.")
@click.option("--log-level", default="WARNING", envvar="TELEHOOK_LOG_LEVEL", help="Log level.")
@click.pass_context
def cli(ctx: click.Context, db: str, log_level: str) -> None:
    """telehook: deliver webhook payloads to Telegram chats."""
    configure_logging(log_level)
    ctx.ensure_object(dict)
    database = TelehookDB(db)
    ctx.call_on_close(database.close)
    ctx.obj["db"] = database
    ctx.obj["webhooks"] = WebhookRepository(database)


# --- Bots ---


@cli.group("bot")
def bot_group() -> None:
    """Manage Telegram bots."""


@bot_group.command("add")
@click.option("--name", required=True)
@click.option("--token", "bot_token", required=True, help="Bot API token.")
@click.option("--chat-id", required=True, help="Target chat id.")
@click.pass_context
def bot_add(ctx: click.Context, name: str, bot_token: str, chat_id: str) -> None:
    """Register a bot."""
    repo: WebhookRepository = ctx.obj["webhooks"]
    try:
        bot = repo.create_bot(name, bot_token, chat_id)
    except WebhookConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(_bot_json(bot), indent=2))


@bot_group.command("list")
@click.pass_context
def bot_list(ctx: click.Context) -> None:
    repo: WebhookRepository = ctx.obj["webhooks"]
    click.echo(json.dumps([_bot_json(b) for b in repo.list_bots()], indent=2))


@bot_group.command("test")
@click.argument("bot_id", type=int)
@click.pass_context
def bot_test(ctx: click.Context, bot_id: int) -> None:
    """Call getMe with the bot's token and record the result."""
    repo: WebhookRepository = ctx.obj["webhooks"]
    bot = repo.get_bot(bot_id)
    if bot is None:
        raise click.ClickException(f"Bot {bot_id} not found")
    outcome = asyncio.run(_telegram_client().test_connection(bot.bot_token))
    repo.mark_bot_tested(bot_id, outcome.ok)
    if not outcome.ok:
        raise click.ClickException(outcome.error or "Connection test failed")
    click.echo(f"Bot {bot.name} passed the connection test")


# --- Webhooks ---


@cli.group("webhook")
def webhook_group() -> None:
    """Manage inbound webhooks."""


@webhook_group.command("add")
@click.option("--name", required=True)
@click.option("--bot-id", type=int, required=True)
@click.option("--template", required=True, help="Jinja2 message template.")
@click.option("--parse-mode", type=_PARSE_MODES, default=ParseMode.MARKDOWN_V2.value)
@click.option("--secret", default=None, help="Require this secret on every trigger call.")
@click.option("--topic-id", default=None, help="Forum topic (message thread) id.")
@click.option("--link-preview/--no-link-preview", default=False)
@click.option("--silent", is_flag=True, help="Deliver without notification sound.")
@click.option("--disabled", is_flag=True)
@click.pass_context
def webhook_add(
    ctx: click.Context,
    name: str,
    bot_id: int,
    template: str,
    parse_mode: str,
    secret: str | None,
    topic_id: str | None,
    link_preview: bool,
    silent: bool,
    disabled: bool,
) -> None:
    """Create a webhook and print its trigger path."""
    repo: WebhookRepository = ctx.obj["webhooks"]
    try:
        webhook = repo.create_webhook(
            name,
            bot_id,
            template,
            parse_mode,
            disable_web_page_preview=not link_preview,
            disable_notification=silent,
            topic_id=topic_id,
            is_protected=bool(secret),
            secret_key=secret,
            is_disabled=disabled,
        )
    except WebhookConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(_webhook_json(webhook), indent=2))


@webhook_group.command("list")
@click.pass_context
def webhook_list(ctx: click.Context) -> None:
    repo: WebhookRepository = ctx.obj["webhooks"]
    click.echo(json.dumps([_webhook_json(w) for w in repo.list_webhooks()], indent=2))


@webhook_group.command("disable")
@click.argument("webhook_id", type=int)
@click.pass_context
def webhook_disable(ctx: click.Context, webhook_id: int) -> None:
    """Reject trigger calls for a webhook without deleting it."""
    _set_disabled(ctx, webhook_id, True)
    click.echo(f"Webhook {webhook_id} disabled")


@webhook_group.command("enable")
@click.argument("webhook_id", type=int)
@click.pass_context
def webhook_enable(ctx: click.Context, webhook_id: int) -> None:
    _set_disabled(ctx, webhook_id, False)
    click.echo(f"Webhook {webhook_id} enabled")


def _set_disabled(ctx: click.Context, webhook_id: int, disabled: bool) -> None:
    repo: WebhookRepository = ctx.obj["webhooks"]
    if repo.set_disabled(webhook_id, disabled) == 0:
        raise click.ClickException(f"Webhook {webhook_id} not found")


# --- Preview ---


@cli.command()
@click.argument("template")
@click.option("--payload", default="{}", help="JSON payload to render against.")
@click.option("--parse-mode", type=_PARSE_MODES, default=ParseMode.MARKDOWN_V2.value)
def render(template: str, payload: str, parse_mode: str) -> None:
    """Print the text a webhook with TEMPLATE would send for PAYLOAD."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(str(exc), param_hint="--payload") from exc
    preview = WebhookConfig(
        id=0,
        uuid="preview",
        name="preview",
        bot=BotConfig(id=0, name="preview", bot_token="preview", chat_id="preview"),
        message_template=template,
        parse_mode=ParseMode.parse(parse_mode),
    )
    result = MessageFormatter().format(preview, data)
    if not result.ok:
        for error in result.errors:
            click.echo(error, err=True)
        sys.exit(1)
    click.echo(result.text)


# --- Failure notifications ---


@cli.group("notify")
def notify_group() -> None:
    """Configure failure notifications."""


@notify_group.command("configure")
@click.option("--enable/--disable", default=True)
@click.option("--bot-token", default=None)
@click.option("--chat-id", default=None)
@click.option("--topic-id", default=None)
@click.pass_context
def notify_configure(
    ctx: click.Context,
    enable: bool,
    bot_token: str | None,
    chat_id: str | None,
    topic_id: str | None,
) -> None:
    repo = SettingsRepository(ctx.obj["db"])
    current = repo.get_notification_settings()
    updated = NotificationSettings(
        enabled=enable,
        bot_token=bot_token or current.bot_token,
        chat_id=chat_id or current.chat_id,
        topic_id=topic_id if topic_id is not None else current.topic_id,
    )
    if updated.enabled and not updated.is_complete:
        raise click.ClickException("A bot token and chat id are required to enable notifications")
    repo.save_notification_settings(updated)
    click.echo(f"Failure notifications {'enabled' if updated.enabled else 'disabled'}")


@notify_group.command("test")
@click.pass_context
def notify_test(ctx: click.Context) -> None:
    """Send a test alert with the saved notification settings."""
    repo = SettingsRepository(ctx.obj["db"])
    notifier = FailureNotifier(_telegram_client(), repo.get_notification_settings)
    result = asyncio.run(notifier.send_test_notification())
    if not result.success:
        raise click.ClickException(result.error or "Test notification failed")
    click.echo("Test notification sent")


# --- Stats and logs ---


@cli.group("stats")
def stats_group() -> None:
    """Show delivery statistics."""


@stats_group.command("overview")
@click.option("--days", type=click.IntRange(min=1), default=30)
@click.pass_context
def stats_overview(ctx: click.Context, days: int) -> None:
    overview = WebhookStatRecorder(ctx.obj["db"]).overview(days)
    click.echo(overview.model_dump_json(indent=2))


@stats_group.command("webhook")
@click.argument("webhook_id", type=int)
@click.option("--days", type=click.IntRange(min=1), default=30)
@click.pass_context
def stats_webhook(ctx: click.Context, webhook_id: int, days: int) -> None:
    summary = WebhookStatRecorder(ctx.obj["db"]).webhook_summary(webhook_id, days)
    click.echo(summary.model_dump_json(indent=2))


@cli.group("logs")
def logs_group() -> None:
    """Inspect and prune request logs."""


@logs_group.command("list")
@click.option("--webhook-id", type=int, default=None)
@click.option("--status", "status_code", type=int, default=None)
@click.option("--limit", type=click.IntRange(min=1), default=20)
@click.pass_context
def logs_list(
    ctx: click.Context, webhook_id: int | None, status_code: int | None, limit: int,
) -> None:
    logs = WebhookLogRepository(ctx.obj["db"]).list_logs(webhook_id, status_code, limit)
    output = [
        {
            "id": log.id,
            "webhook_id": log.webhook_id,
            "request_id": log.request_id,
            "status": log.response_status_code,
            "telegram_sent": log.telegram_sent,
            "processing_time_ms": log.processing_time_ms,
            "created_at": log.created_at,
        }
        for log in logs
    ]
    click.echo(json.dumps(output, indent=2))


@logs_group.command("purge")
@click.option("--days", type=click.IntRange(min=1), required=True, help="Delete logs older than this.")
@click.pass_context
def logs_purge(ctx: click.Context, days: int) -> None:
    deleted = WebhookLogRepository(ctx.obj["db"]).purge_older_than(days)
    click.echo(f"Deleted {deleted} log entries")
