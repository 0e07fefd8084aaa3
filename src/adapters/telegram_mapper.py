"""Telegram-to-router message mapping adapter.

This keeps Telethon-specific details out of the command router.
"""

from __future__ import annotations

from typing import Optional

from telethon.tl.custom import Message

from adapters.bot_commands import CommandContext


def build_command_context(message: Message) -> Optional[CommandContext]:
    """Build a CommandContext from a Telethon Message, or None if unusable."""

    text = getattr(message, "raw_text", None) or ""
    sender_id = getattr(message, "sender_id", None)
    chat_id = getattr(message, "chat_id", None)
    # Anonymous admins and channel posts carry no user id to authorize.
    if not text or sender_id is None or chat_id is None:
        return None
    return CommandContext(user_id=int(sender_id), chat_id=int(chat_id), text=text)
