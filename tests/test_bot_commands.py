from __future__ import annotations

import asyncio
from typing import Optional

from adapters.bot_commands import (
    NO_ACCESS_TEXT,
    CommandContext,
    CommandRouter,
    parse_admin_ids,
    parse_command,
)
from core.config import ListingConfig
from core.errors import ProtocolError
from core.models import ContentItem, DeliveryReport, PostPage, PostStatus, SyncResult

ADMIN = 10
STRANGER = 20


def _item(item_id: int) -> ContentItem:
    key = f"-1_{item_id}"
    return ContentItem(
        owner_key="-1",
        item_key=str(item_id),
        natural_key=key,
        permalink=f"https://vk.com/wall{key}",
        text="text",
        media=("u",),
    )


class FakeService:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.sync_error: Optional[Exception] = None
        self.report = DeliveryReport()

    def stats(self) -> dict[PostStatus, int]:
        return {PostStatus.NEW: 2, PostStatus.USED: 1}

    def sync(self, max_items: int) -> SyncResult:
        self.calls.append(("sync", max_items))
        if self.sync_error:
            raise self.sync_error
        return SyncResult(fetched=5, extracted=4, inserted=3)

    async def deliver_next(self, chat, count: int = 1) -> DeliveryReport:
        self.calls.append(("deliver", chat, count))
        return self.report

    def list_page(self, status, page_size, page_index) -> PostPage:
        self.calls.append(("list", status, page_size, page_index))
        return PostPage(items=[_item(1)], total=1, page_index=0, max_page=0, page_size=page_size)

    def get(self, natural_key: str) -> Optional[ContentItem]:
        return _item(1) if natural_key == "-1_1" else None

    def set_status(self, natural_key: str, status) -> bool:
        self.calls.append(("set", natural_key, status))
        return natural_key == "-1_1"


def _router(service: FakeService, target_chat=None) -> CommandRouter:
    return CommandRouter(
        service=service,
        admin_ids={ADMIN},
        sync_limit=200,
        listing=ListingConfig(page_size=10),
        target_chat=target_chat,
    )


def _send(router: CommandRouter, text: str, user_id: int = ADMIN) -> list[str]:
    return asyncio.run(router.dispatch(CommandContext(user_id=user_id, chat_id=99, text=text)))


def test_parse_command_strips_bot_mention() -> None:
    assert parse_command("/next@relay_bot 3") == ("next", "3")
    assert parse_command("/Stats") == ("stats", "")
    assert parse_command("hello") is None
    assert parse_command("/") is None


def test_parse_admin_ids_skips_junk() -> None:
    assert parse_admin_ids("1, 2,,abc,0, -5") == {1, 2, -5}
    assert parse_admin_ids("") == set()


def test_whoami_is_open_to_everyone() -> None:
    replies = _send(_router(FakeService()), "/whoami", user_id=STRANGER)
    assert replies == [f"user_id={STRANGER}\nchat_id=99"]


def test_non_admin_is_rejected() -> None:
    service = FakeService()
    assert _send(_router(service), "/sync", user_id=STRANGER) == [NO_ACCESS_TEXT]
    assert _send(_router(service), "/help", user_id=STRANGER) == [NO_ACCESS_TEXT]
    assert service.calls == []


def test_plain_text_is_ignored() -> None:
    assert _send(_router(FakeService()), "hi there") == []


def test_sync_reports_counts() -> None:
    service = FakeService()
    replies = _send(_router(service), "/sync")

    assert service.calls == [("sync", 200)]
    assert "added=3" in replies[0]
    assert "Stats: new=2 used=1" in replies[0]


def test_sync_error_becomes_reply() -> None:
    service = FakeService()
    service.sync_error = ProtocolError("VK error 5: User authorization failed", code=5)

    replies = _send(_router(service), "/sync")

    assert replies == ["Error: VK error 5: User authorization failed"]


def test_next_delivers_to_requesting_chat_or_target() -> None:
    service = FakeService()
    service.report = DeliveryReport(sent=[_item(1)])

    replies = _send(_router(service), "/next 3")
    _send(_router(service, target_chat="@channel"), "/next5")

    assert service.calls == [("deliver", 99, 3), ("deliver", "@channel", 5)]
    assert replies[0].startswith("Sent: 1")


def test_next_with_empty_pool_and_failure() -> None:
    service = FakeService()
    assert _send(_router(service), "/next")[0].startswith("Nothing to send.")

    service.report = DeliveryReport(failure="flood wait")
    replies = _send(_router(service), "/next")
    assert replies == ["Delivery failed, post returned to the pool: flood wait"]


def test_used_and_queue_pages_are_one_based() -> None:
    service = FakeService()
    _send(_router(service), "/used 3")
    _send(_router(service), "/queue")
    _send(_router(service), "/used nonsense")

    assert service.calls == [
        ("list", PostStatus.USED, 10, 2),
        ("list", PostStatus.NEW, 10, 0),
        ("list", PostStatus.USED, 10, 0),
    ]


def test_show_and_set_status() -> None:
    service = FakeService()
    router = _router(service)

    assert "key: -1_1" in _send(router, "/show -1_1")[0]
    assert _send(router, "/show -1_2") == ["Post not found."]
    assert _send(router, "/show whatever")[0].startswith("Usage")
    assert _send(router, "/setnew -1_1") == ["-1_1 is now new"]
    assert _send(router, "/setused -1_7") == ["Post not found."]
    assert ("set", "-1_1", PostStatus.NEW) in service.calls


def test_unknown_command() -> None:
    assert _send(_router(FakeService()), "/dance") == ["Unknown command. Send /help"]
