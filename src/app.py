"""Application entry point for the vkrelay bot and CLI."""

from __future__ import annotations

import argparse
import functools
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from telethon import events

from adapters.bot_commands import CommandRouter
from adapters.message_formatting import (
    build_caption_html,
    format_post_details,
    format_post_page,
    format_stats,
)
from adapters.sqlite_storage import SQLiteStorage
from adapters.telegram_mapper import build_command_context
from adapters.telegram_publisher import TelegramAlbumPublisher
from adapters.vk_client import VKWallClient
from client import build_client
from core.errors import RelayError
from core.fetcher import ContentFetcher
from core.models import PostStatus
from core.service import ContentService
from settings import PROJECT_ROOT, Settings, load_settings

NAME = "VKRELAY"
FONT = "tarty-1"


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


def _configure_logging(settings: Settings) -> None:
    config = settings.logging or {}
    if not config.get("enabled", True):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(settings.secret_values(), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/vkrelay.log")
        if not os.path.isabs(path):
            path = os.path.join(PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO; keep its noise out of our log.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _open_storage(settings: Settings) -> SQLiteStorage:
    storage = SQLiteStorage(settings.storage_config())
    storage.init_db()
    return storage


def _build_fetcher(settings: Settings) -> ContentFetcher:
    fetch_config = settings.fetch_config()
    source = VKWallClient(settings.vk_token, settings.vk_owner_id)
    return ContentFetcher(source, fetch_config)


def _run(settings: Settings) -> None:
    _print_banner()
    logger = logging.getLogger(__name__)
    logger.info("Starting vkrelay")

    storage = _open_storage(settings)
    fetcher = _build_fetcher(settings)
    logger.info("Admins loaded: %s", len(settings.admin_ids))
    if not settings.admin_ids:
        logger.warning("TG_ADMIN_IDS is empty; only /whoami will answer")

    client = build_client(settings)
    delivery_config = settings.delivery_config()
    service = ContentService(
        repository=storage,
        fetcher=fetcher,
        publisher=TelegramAlbumPublisher(client),
        caption_builder=functools.partial(build_caption_html, archive_tag=delivery_config.archive_tag),
        delivery_config=delivery_config,
    )
    router = CommandRouter(
        service=service,
        admin_ids=set(settings.admin_ids),
        sync_limit=settings.sync_max_items,
        listing=settings.listing_config(),
        target_chat=settings.target_chat,
    )

    # Single handler keeps Telethon integration minimal and defers all
    # command handling to the router for consistency and testability.
    @client.on(events.NewMessage(incoming=True, pattern=r"^/"))
    async def handler(event) -> None:
        try:
            context = build_command_context(event.message)
            if context is None:
                return
            for reply in await router.dispatch(context):
                await event.respond(reply, link_preview=False)
        except Exception:
            logger.exception("Error while handling command")

    # Explicit lifecycle management makes start/shutdown behavior obvious.
    client.start(bot_token=settings.bot_token)
    logger.info("Bot connected. Listening for commands...")
    client.run_until_disconnected()


def _sync(settings: Settings, limit: Optional[int]) -> None:
    storage = _open_storage(settings)
    service = ContentService(repository=storage, fetcher=_build_fetcher(settings))
    result = service.sync(settings.sync_max_items if limit is None else limit)
    print(
        f"sync ok: wall={result.fetched} parsed={result.extracted} inserted={result.inserted} "
        f"{format_stats(service.stats())} db={settings.db_path}"
    )


def _check(settings: Settings, limit: int) -> None:
    # Read-only feed diagnostic: nothing is written to the database.
    fetcher = _build_fetcher(settings)
    entries = fetcher.fetch_all(limit)
    items = fetcher.extract(entries)
    print(f"wall items={len(entries)}, posts_with_photos={len(items)}")
    if not items:
        print(f"no photo posts found in first {limit} items. try a bigger --limit.")
        return
    item = items[0]
    print("example post:")
    print(f"  key: {item.natural_key}")
    print(f"  link: {item.permalink}")
    print(f"  text_len: {len(item.text)}")
    print(f"  photos: {len(item.media)}")
    print(f"  first_photo_url: {item.media[0]}")


def _stats(settings: Settings) -> None:
    storage = _open_storage(settings)
    print(format_stats(storage.stats()))


def _list(settings: Settings, status: str, page: int) -> None:
    storage = _open_storage(settings)
    parsed = PostStatus.parse(status)
    result = storage.list_page(parsed, settings.listing_page_size, page - 1)
    print(format_post_page(result, parsed))


def _set_status(settings: Settings, key: str, status: str) -> None:
    storage = _open_storage(settings)
    if not storage.set_status(key, PostStatus.parse(status)):
        raise SystemExit(f"post not found: {key}")
    item = storage.get(key)
    if item is not None:
        print(format_post_details(item))


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="vkrelay")
    parser.add_argument("--config", help="Path to config.json")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the Telegram bot")
    sync_parser = subparsers.add_parser("sync", help="Pull posts from VK into the database")
    sync_parser.add_argument("--limit", type=int, default=None, help="Max wall items (0 = all)")
    check_parser = subparsers.add_parser("check", help="Fetch and parse the wall without saving")
    check_parser.add_argument("--limit", type=int, default=20)
    subparsers.add_parser("stats", help="Show counts by status")
    list_parser = subparsers.add_parser("list", help="List stored posts")
    list_parser.add_argument("status", choices=[status.value for status in PostStatus])
    list_parser.add_argument("--page", type=int, default=1)
    set_parser = subparsers.add_parser("set-status", help="Manually change a post status")
    set_parser.add_argument("key")
    set_parser.add_argument("status", choices=[status.value for status in PostStatus])

    args = parser.parse_args(argv)
    settings = load_settings(args.config)
    _configure_logging(settings)

    try:
        if args.command == "sync":
            _sync(settings, args.limit)
        elif args.command == "check":
            _check(settings, args.limit)
        elif args.command == "stats":
            _stats(settings)
        elif args.command == "list":
            _list(settings, args.status, args.page)
        elif args.command == "set-status":
            _set_status(settings, args.key, args.status)
        else:
            _run(settings)
    except RelayError as e:
        logging.getLogger(__name__).error("%s failed: %s", args.command or "run", e)
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
