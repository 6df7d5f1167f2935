"""Telegram client factory for reportwatch.

The connection manager decides when to connect and reconnect, so the client
is built with Telethon's own auto-reconnect turned off.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from telethon import TelegramClient


def build_client() -> TelegramClient:
    """Create a Telethon client from environment variables.

    API_ID/API_HASH are read via python-dotenv to keep secrets out of the repo.
    The session name defaults to "reportwatch" to create a local .session file.
    """

    load_dotenv()

    api_id = os.getenv("API_ID")
    api_hash = os.getenv("API_HASH")
    session_name = os.getenv("SESSION_NAME", "reportwatch")

    if not api_id or not api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(session_name, int(api_id), api_hash, auto_reconnect=False)


def two_factor_password() -> str | None:
    """Cloud password used when QR login asks for it."""

    load_dotenv()
    return os.getenv("2FA") or None
