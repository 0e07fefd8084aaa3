"""Bot command routing.

The router turns one incoming command into reply texts. It has no Telethon
dependency so the whole command surface can be tested with fakes; the
Telethon wiring lives in app.py and telegram_mapper.py.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from adapters.message_formatting import format_post_details, format_post_page, format_stats
from core.config import ListingConfig
from core.errors import RelayError
from core.models import PostStatus
from core.post_keys import looks_like_natural_key
from core.service import ContentService

LOGGER = logging.getLogger(__name__)

HELP_TEXT = "\n".join(
    [
        "Commands:",
        "/sync - pull new posts from VK",
        "/next [n] - publish n random unused posts (default 1)",
        "/next5 - publish 5 random unused posts",
        "/queue [page] - list unused posts",
        "/used [page] - list published posts",
        "/show <key> - post details",
        "/setnew <key> - return a post to the pool",
        "/setused <key> - mark a post as published",
        "/stats - counts by status",
        "/whoami - your ids",
    ]
)
NO_ACCESS_TEXT = "No access.\nSend /whoami and add your user_id to TG_ADMIN_IDS, then restart the bot."


@dataclass(frozen=True)
class CommandContext:
    """Minimal view of an incoming command message."""

    user_id: int
    chat_id: int
    text: str


def parse_command(text: str) -> Optional[Tuple[str, str]]:
    """Split '/cmd@bot args' into ('cmd', 'args'); None for plain text."""

    text = text.strip()
    if not text.startswith("/"):
        return None
    head, _, args = text.partition(" ")
    command = head[1:].split("@", 1)[0].lower()
    if not command:
        return None
    return command, args.strip()


def parse_admin_ids(raw: str) -> set[int]:
    """Parse a comma-separated id list, ignoring blanks, junk and zero."""

    admin_ids: set[int] = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            value = int(part)
        except ValueError:
            LOGGER.warning("Ignoring invalid admin id %r", part)
            continue
        if value:
            admin_ids.add(value)
    return admin_ids


def _page_arg(args: str) -> int:
    """Human page numbers start at 1; storage pages start at 0."""

    try:
        return max(int(args.split()[0]) - 1, 0) if args else 0
    except ValueError:
        return 0


class CommandRouter:
    """Maps bot commands to ContentService calls."""

    def __init__(
        self,
        service: ContentService,
        admin_ids: set[int],
        sync_limit: int,
        listing: ListingConfig,
        target_chat: Optional[Union[int, str]] = None,
    ) -> None:
        self._service = service
        self._admin_ids = admin_ids
        self._sync_limit = sync_limit
        self._listing = listing
        self._target_chat = target_chat

    def is_admin(self, user_id: int) -> bool:
        # No configured admins means nobody is an admin.
        return user_id in self._admin_ids

    async def dispatch(self, context: CommandContext) -> List[str]:
        """Return the replies for one message; empty for non-commands."""

        parsed = parse_command(context.text)
        if parsed is None:
            return []
        command, args = parsed

        if command == "whoami":
            return [f"user_id={context.user_id}\nchat_id={context.chat_id}"]

        if not self.is_admin(context.user_id):
            LOGGER.info("Rejected /%s from user %s", command, context.user_id)
            return [NO_ACCESS_TEXT]

        handler = getattr(self, f"_cmd_{command}", None)
        if handler is None:
            return ["Unknown command. Send /help"]

        try:
            return await handler(context, args)
        except RelayError as e:
            LOGGER.warning("/%s failed: %s", command, e)
            return [f"Error: {e}"]

    async def _cmd_start(self, context: CommandContext, args: str) -> List[str]:
        return [HELP_TEXT]

    _cmd_help = _cmd_start

    async def _cmd_stats(self, context: CommandContext, args: str) -> List[str]:
        counts = await asyncio.to_thread(self._service.stats)
        return [format_stats(counts)]

    async def _cmd_sync(self, context: CommandContext, args: str) -> List[str]:
        result = await asyncio.to_thread(self._service.sync, self._sync_limit)
        counts = await asyncio.to_thread(self._service.stats)
        return [
            f"Sync done: fetched={result.fetched} with photos={result.extracted} added={result.inserted}\n"
            + format_stats(counts)
        ]

    async def _cmd_next(self, context: CommandContext, args: str) -> List[str]:
        count = 1
        if args:
            try:
                count = max(int(args.split()[0]), 1)
            except ValueError:
                count = 1
        return await self._deliver(context, count)

    async def _cmd_next5(self, context: CommandContext, args: str) -> List[str]:
        return await self._deliver(context, 5)

    async def _deliver(self, context: CommandContext, count: int) -> List[str]:
        chat = self._target_chat if self._target_chat is not None else context.chat_id
        report = await self._service.deliver_next(chat, count)
        counts = await asyncio.to_thread(self._service.stats)
        replies = []
        if report.failure:
            replies.append(f"Delivery failed, post returned to the pool: {report.failure}")
        if report.sent:
            replies.append(f"Sent: {len(report.sent)}\n{format_stats(counts)}")
        elif not report.failure:
            replies.append(f"Nothing to send.\n{format_stats(counts)}")
        return replies

    async def _list(self, status: PostStatus, args: str) -> List[str]:
        page = await asyncio.to_thread(
            self._service.list_page, status, self._listing.page_size, _page_arg(args)
        )
        return [format_post_page(page, status)]

    async def _cmd_used(self, context: CommandContext, args: str) -> List[str]:
        return await self._list(PostStatus.USED, args)

    async def _cmd_queue(self, context: CommandContext, args: str) -> List[str]:
        return await self._list(PostStatus.NEW, args)

    async def _cmd_show(self, context: CommandContext, args: str) -> List[str]:
        key = args.strip()
        if not looks_like_natural_key(key):
            return ["Usage: /show <owner_post>, e.g. /show -123_456"]
        item = await asyncio.to_thread(self._service.get, key)
        if item is None:
            return ["Post not found."]
        return [format_post_details(item)]

    async def _set(self, args: str, status: PostStatus) -> List[str]:
        key = args.strip()
        if not looks_like_natural_key(key):
            return [f"Usage: /set{status.value} <owner_post>"]
        found = await asyncio.to_thread(self._service.set_status, key, status)
        if not found:
            return ["Post not found."]
        return [f"{key} is now {status.value}"]

    async def _cmd_setnew(self, context: CommandContext, args: str) -> List[str]:
        return await self._set(args, PostStatus.NEW)

    async def _cmd_setused(self, context: CommandContext, args: str) -> List[str]:
        return await self._set(args, PostStatus.USED)
