"""In-chat slash commands.

Anyone may ask for help, status, stats and the chat list; database
maintenance is limited to the configured admin users. Replies go back to
the chat the command came from.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import os
import time
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Tuple

from reportwatch.core.config import CommandConfig
from reportwatch.core.models import InboundEvent
from reportwatch.core.ports import CommandStoragePort

if TYPE_CHECKING:
    from reportwatch.core.connection import StatusSnapshot

LOGGER = logging.getLogger(__name__)

USER_COMMANDS = ("help", "status", "stats", "chats")
ADMIN_COMMANDS = ("backup", "vacuum")

CHAT_LIST_LIMIT = 10

Reply = Callable[[str, str], Awaitable[bool]]


@dataclass(frozen=True)
class Command:
    name: str
    args: Tuple[str, ...] = ()


def parse_command(text: str) -> Optional[Command]:
    """Return the command in text, or None when it is not a slash command."""

    parts = text.strip().split()
    if not parts or not parts[0].startswith("/"):
        return None
    # Group clients may address a command as /stats@someone.
    name = parts[0][1:].split("@", 1)[0].lower()
    if not name:
        return None
    return Command(name=name, args=tuple(parts[1:]))


def _uptime(seconds: float) -> str:
    hours, remainder = divmod(int(seconds), 3600)
    return f"{hours}h {remainder // 60}m"


class CommandHandler:
    def __init__(
        self,
        storage: CommandStoragePort,
        reply: Reply,
        status: Callable[[], "StatusSnapshot"],
        config: Optional[CommandConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._storage = storage
        self._reply = reply
        self._status = status
        self._config = config or CommandConfig()
        self._clock = clock
        self._started = clock()

    def is_admin(self, sender_id: str) -> bool:
        return sender_id in self._config.admin_users

    def is_permitted(self, command: Command, sender_id: str) -> bool:
        if command.name in USER_COMMANDS:
            return True
        return command.name in ADMIN_COMMANDS and self.is_admin(sender_id)

    async def handle(self, event: InboundEvent, command: Command) -> str:
        """Run one command and send the reply; returns the reply text."""

        if not self.is_permitted(command, event.sender_id):
            LOGGER.info("Rejected command /%s from %s", command.name, event.sender_id)
            text = "Unknown or not permitted command. Use /help for the list."
        else:
            try:
                text = self._render(command)
                LOGGER.info("Command /%s handled for %s", command.name, event.chat_id)
            except Exception:
                LOGGER.exception("Error while running command /%s", command.name)
                text = f"Command /{command.name} failed."

        if not await self._reply(event.chat_id, text):
            LOGGER.warning("Reply to /%s in %s was not delivered", command.name, event.chat_id)
        return text

    def _render(self, command: Command) -> str:
        if command.name == "help":
            return self._help()
        if command.name == "status":
            return self._status_text()
        if command.name == "stats":
            return self._stats_text()
        if command.name == "chats":
            return self._chats_text()
        if command.name == "backup":
            stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            path = self._storage.backup(os.path.join(self._config.backup_dir, f"backup_{stamp}.db"))
            return f"Backup written to {path}"
        if command.name == "vacuum":
            self._storage.vacuum()
            return "Database vacuumed."
        raise ValueError(f"Unhandled command: {command.name}")

    def _help(self) -> str:
        lines = [
            "**Commands**",
            "/help - this list",
            "/status - connection and queue status",
            "/stats - report and message totals",
            "/chats - most reported chats",
            "",
            "**Admin**",
            "/backup - copy the database",
            "/vacuum - compact the database",
        ]
        return "\n".join(lines)

    def _status_text(self) -> str:
        snapshot = self._status()
        return "\n".join(
            [
                "**Status**",
                f"Uptime: {_uptime(self._clock() - self._started)}",
                f"Connection: {snapshot.connection_state}",
                f"Reconnect attempts: {snapshot.reconnect_attempts}",
                f"Queued messages: {snapshot.queue_depth}",
            ]
        )

    def _stats_text(self) -> str:
        stats = self._storage.get_stats()
        return "\n".join(
            [
                "**Stats**",
                f"Messages: {stats.get('total_messages', 0)}",
                f"Chats: {stats.get('total_chats', 0)}",
                f"Reports: {stats.get('total_reports', 0)} (today {stats.get('reports_today', 0)}, "
                f"this week {stats.get('reports_this_week', 0)})",
                f"Pending reports: {stats.get('pending_reports', 0)}",
                f"Requests: {stats.get('total_requests', 0)}",
            ]
        )

    def _chats_text(self) -> str:
        chats = self._storage.list_chats(limit=CHAT_LIST_LIMIT)
        if not chats:
            return "No chats recorded yet."
        lines = ["**Most reported chats**"]
        for index, chat in enumerate(chats, start=1):
            lines.append(f"{index}. {chat.display_name} | {chat.message_count} messages | {chat.report_count} reports")
        return "\n".join(lines)
