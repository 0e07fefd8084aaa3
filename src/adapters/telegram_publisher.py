"""Telegram album publishing adapter.

Sends a claimed post as a photo album through a Telethon client.
"""

from __future__ import annotations

import asyncio
from typing import Sequence, Union

from telethon import errors

from core.config import MAX_MEDIA_PER_POST
from core.errors import DeliveryError


class TelegramAlbumPublisher:
    """Publisher adapter that posts photos by URL with an HTML caption."""

    def __init__(self, client) -> None:
        self._client = client

    async def publish(self, chat: Union[int, str], media: Sequence[str], caption: str) -> None:
        """Send one photo or an album; the caption goes on the first photo."""

        urls = list(media)[:MAX_MEDIA_PER_POST]
        if not urls:
            raise DeliveryError("Nothing to send: post has no photos")

        # A single URL is sent as a plain photo; a list becomes an album.
        file = urls[0] if len(urls) == 1 else urls
        try:
            await self._client.send_file(chat, file, caption=caption or None, parse_mode="html")
        except errors.RPCError as e:
            raise DeliveryError(f"Telegram refused the post: {e}") from e
        except (ConnectionError, OSError, asyncio.TimeoutError) as e:
            raise DeliveryError(f"Telegram connection failed: {e!r}") from e
        except (ValueError, TypeError) as e:
            # Telethon raises ValueError for chats it cannot resolve.
            raise DeliveryError(f"Cannot send to {chat!r}: {e}") from e
