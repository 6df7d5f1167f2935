"""Static configuration for reportwatch.

All user-editable settings live in a single JSON file. Missing keys (or a
missing file) fall back to the defaults below.
"""

import json
import os

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

CONFIG_PATH = os.environ.get("REPORTWATCH_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        data = json.load(handle)
    if not isinstance(data, dict):
        raise ValueError(f"{CONFIG_PATH} must contain a JSON object")
    return data


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

CONFIG = _CONFIG

# Reconnect backoff is linear: base_interval * attempt number.
_connection = _CONFIG.get("connection", {})
BASE_INTERVAL_SECONDS = float(_connection.get("base_interval_seconds", 5))
MAX_RECONNECT_ATTEMPTS = int(_connection.get("max_reconnect_attempts", 10))
CHALLENGE_TIMEOUT_SECONDS = float(_connection.get("challenge_timeout_seconds", 60))

# - QUEUE_OVERFLOW: "block" waits for room, "reject" drops the new message
_queue = _CONFIG.get("queue", {})
QUEUE_CAPACITY = int(_queue.get("capacity", 10000))
QUEUE_OVERFLOW = str(_queue.get("overflow", "block"))
IDLE_POLL_SECONDS = float(_queue.get("idle_poll_seconds", 0.1))

_thresholds = _CONFIG.get("thresholds", {})
HIGH_SEVERITY_THRESHOLD = int(_thresholds.get("high_severity", 1))
SPAM_REPORTS_THRESHOLD = int(_thresholds.get("spam_reports", 5))
CHANNEL_REPORTS_THRESHOLD = int(_thresholds.get("channel_reports", 10))

_dispatcher = _CONFIG.get("dispatcher", {})
SWEEP_INTERVAL_SECONDS = float(_dispatcher.get("sweep_interval_seconds", 30))

_storage = _CONFIG.get("storage", {})
DB_PATH = _resolve_path(_storage.get("db_path", "reportwatch.db"))
RETENTION_DAYS = int(_storage.get("retention_days", 90))
MAX_CONTENT_CHARS = int(_storage.get("max_content_chars", 1000))

# Notification method switches adapters without changing core logic.
_notifications = _CONFIG.get("notifications", {})
NOTIFICATION_METHOD = _notifications.get("notification_method", "saved_messages")
# Bot chat id is only required when notification_method=bot.
BOT_CHAT_ID = _notifications.get("bot_chat_id")
WEBHOOK_URLS = list(_notifications.get("webhook_urls", []))

LOGGING = _CONFIG.get("logging", {})

# In-chat slash commands are off unless enabled; admin_users are sender ids.
_commands = _CONFIG.get("commands", {})
COMMANDS_ENABLED = bool(_commands.get("enabled", False))
ADMIN_USERS = [str(user) for user in _commands.get("admin_users", [])]
BACKUP_DIR = _resolve_path(_commands.get("backup_dir", "backups"))
