"""Telegram client factory for vkrelay.

We explicitly manage the client's lifecycle (start/run_until_disconnected)
so it is obvious when the session is created and when it ends. This avoids
implicit context-manager behavior for a long-running bot.
"""

from __future__ import annotations

import logging

from telethon import TelegramClient

from settings import Settings


def build_client(settings: Settings) -> TelegramClient:
    """Create a Telethon client for the bot account.

    Telethon logs bots in through MTProto, so API_ID/API_HASH are needed in
    addition to the bot token. The session name creates a local .session file.
    """

    # Fail fast on missing credentials to avoid an ambiguous login prompt.
    if not settings.api_id or not settings.api_hash:
        raise RuntimeError("Missing API_ID or API_HASH in environment")
    if not settings.bot_token:
        raise RuntimeError("Missing BOT_API in environment")

    logging.getLogger(__name__).info("Initializing Telegram client")

    return TelegramClient(settings.session_name, settings.api_id, settings.api_hash)
