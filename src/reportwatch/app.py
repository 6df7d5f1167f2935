"""Application entry point for the reportwatch watcher."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

import qrcode
from art import tprint
from dotenv import load_dotenv

from reportwatch import settings
from reportwatch.adapters.notification_formatting import severity_label
from reportwatch.adapters.sqlite_storage import SQLiteStorage
from reportwatch.adapters.telegram_bot_notifier import TelegramBotNotifier
from reportwatch.adapters.telegram_connector import TelethonConnector
from reportwatch.adapters.telegram_notifier import SavedMessagesNotifier
from reportwatch.adapters.webhook_notifier import WebhookNotifier
from reportwatch.client import build_client, two_factor_password
from reportwatch.core.commands import CommandHandler
from reportwatch.core.config import (
    CommandConfig,
    ConnectionPolicy,
    DispatcherConfig,
    ProcessingConfig,
    QueueConfig,
    ThresholdConfig,
)
from reportwatch.core.connection import ConnectionManager
from reportwatch.core.dispatcher import AlertDispatcher
from reportwatch.core.ports import ConnectorPort, NotifierPort
from reportwatch.core.processor import MessageProcessor
from reportwatch.core.queue import InboundQueue, SequentialConsumer
from reportwatch.core.thresholds import ThresholdEngine

NAME = "REPORTWATCH"
FONT = "tarty-1"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in redact_cfg.get("patterns", ["API_HASH", "BOT_API", "2FA"]):
        value = os.getenv(name)
        if value:
            values.append(value)
    # Longest first so a secret containing another is masked whole.
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/reportwatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _print_qr(url: str) -> None:
    print("Scan this QR code in Telegram (Settings > Devices > Link Desktop Device):")
    qr = qrcode.QRCode(border=1)
    qr.add_data(url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


def _build_notifier(connector: ConnectorPort) -> NotifierPort:
    """Select the notification adapter from configuration."""

    method = settings.NOTIFICATION_METHOD
    if method == "bot":
        bot_token = os.getenv("BOT_API")
        if not bot_token:
            raise RuntimeError("BOT_API is required when notification_method=bot")
        if not settings.BOT_CHAT_ID:
            raise RuntimeError("notifications.bot_chat_id is required for bot notifications")
        notifier: NotifierPort = TelegramBotNotifier(bot_token=bot_token, chat_id=str(settings.BOT_CHAT_ID))
    elif method == "webhook":
        if not settings.WEBHOOK_URLS:
            raise RuntimeError("notifications.webhook_urls is required for webhook notifications")
        notifier = WebhookNotifier(settings.WEBHOOK_URLS)
    elif method == "saved_messages":
        notifier = SavedMessagesNotifier(connector)
    else:
        raise RuntimeError("notification_method must be 'saved_messages', 'bot' or 'webhook'")
    LOGGER.info("Selected notification method - %s", method)
    return notifier


async def _serve() -> None:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    removed = storage.cleanup_messages(settings.RETENTION_DAYS)
    LOGGER.info("Message cleanup removed %s rows", removed)

    policy = ConnectionPolicy(
        base_interval=settings.BASE_INTERVAL_SECONDS,
        max_reconnect_attempts=settings.MAX_RECONNECT_ATTEMPTS,
        challenge_timeout=settings.CHALLENGE_TIMEOUT_SECONDS,
    )
    connector = TelethonConnector(
        build_client(),
        two_factor_password=two_factor_password(),
        challenge_timeout=policy.challenge_timeout,
    )
    # Bound below, once the queue and consumer exist.
    manager: Optional[ConnectionManager] = None

    thresholds = ThresholdEngine(
        storage,
        ThresholdConfig(
            high_severity=settings.HIGH_SEVERITY_THRESHOLD,
            spam_reports=settings.SPAM_REPORTS_THRESHOLD,
            channel_reports=settings.CHANNEL_REPORTS_THRESHOLD,
        ),
    )
    commands = None
    if settings.COMMANDS_ENABLED:
        commands = CommandHandler(
            storage,
            connector.send_text,
            status=lambda: manager.status(),
            config=CommandConfig(admin_users=frozenset(settings.ADMIN_USERS), backup_dir=settings.BACKUP_DIR),
        )
        LOGGER.info("In-chat commands enabled (%s admin users)", len(settings.ADMIN_USERS))
    processor = MessageProcessor(
        storage,
        thresholds,
        ProcessingConfig(max_content_chars=settings.MAX_CONTENT_CHARS),
        commands=commands,
    )

    queue_config = QueueConfig(
        capacity=settings.QUEUE_CAPACITY,
        overflow=settings.QUEUE_OVERFLOW,
        idle_poll_seconds=settings.IDLE_POLL_SECONDS,
    )
    queue = InboundQueue(queue_config)
    consumer = SequentialConsumer(
        queue,
        processor,
        queue_config,
        is_active=lambda: manager is not None and manager.is_connected(),
    )
    manager = ConnectionManager(connector, queue, consumer, policy, on_challenge=_print_qr)

    dispatcher = AlertDispatcher(
        storage,
        _build_notifier(connector),
        DispatcherConfig(sweep_interval=settings.SWEEP_INTERVAL_SECONDS),
    )
    dispatcher_task = asyncio.create_task(dispatcher.run(), name="reportwatch-dispatcher")

    try:
        await manager.initialize()
        LOGGER.info("Listening for incoming messages...")
        await manager.wait_closed()
    finally:
        await manager.stop()
        dispatcher.stop()
        await dispatcher_task
        LOGGER.info("Final status: %s", manager.status())


def _run() -> None:
    _print_banner()
    _configure_logging()
    LOGGER.info("Starting reportwatch")
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        LOGGER.info("Interrupted, shutting down")


def _stats() -> None:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    stats = storage.get_stats()

    print(f"Reports:        {stats['total_reports']}")
    print(f"  today:        {stats['reports_today']}")
    print(f"  this week:    {stats['reports_this_week']}")
    print(f"  pending:      {stats['pending_reports']}")
    print(f"  high sev.:    {stats['high_severity_reports']}")
    print(f"Chats:          {stats['total_chats']}")
    print(f"Messages:       {stats['total_messages']}")
    print(f"Requests:       {stats['total_requests']}")
    print(f"Unsent alerts:  {stats['unsent_alerts']}")

    chats = storage.list_chats(limit=5)
    if not chats:
        return
    print("")
    print("Most reported chats:")
    for index, chat in enumerate(chats, start=1):
        print(f"{index}. {chat.kind.value} | {chat.display_name} | reports={chat.report_count} messages={chat.message_count}")


def _alerts() -> None:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    alerts = storage.list_unsent_alerts()
    if not alerts:
        print("No unsent alerts.")
        return
    for alert in alerts:
        created = alert.created_at.astimezone().strftime("%H:%M:%S %d-%m-%Y")
        print(f"{alert.id}. [{created}] {alert.alert_type} ({severity_label(alert.severity)}) | {alert.message}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="reportwatch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the watcher")
    subparsers.add_parser("stats", help="Print report statistics")
    subparsers.add_parser("alerts", help="List alerts waiting for delivery")

    args = parser.parse_args(argv)
    if args.command == "stats":
        _stats()
        return
    if args.command == "alerts":
        _alerts()
        return
    _run()


if __name__ == "__main__":
    main()
