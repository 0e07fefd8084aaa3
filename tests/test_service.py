from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from core.config import DeliveryConfig, FetchConfig
from core.errors import DeliveryError, TransportError, ValidationError
from core.fetcher import ContentFetcher
from core.models import ContentItem, FeedPage, PostPage, PostStatus
from core.service import ContentService


def _photo_entry(entry_id: int) -> dict:
    return {
        "id": entry_id,
        "text": f"post {entry_id}",
        "attachments": [{"type": "photo", "photo": {"sizes": [{"url": f"u{entry_id}", "width": 1, "height": 1}]}}],
    }


def _item(item_id: int) -> ContentItem:
    key = f"-1_{item_id}"
    return ContentItem(
        owner_key="-1",
        item_key=str(item_id),
        natural_key=key,
        permalink=f"https://vk.com/wall{key}",
        text=f"post {item_id}",
        media=(f"u{item_id}",),
    )


class FakeStorage:
    def __init__(self, items: Optional[list[ContentItem]] = None) -> None:
        self.items: dict[str, ContentItem] = {item.natural_key: item for item in items or []}
        self.upserts: list[list[ContentItem]] = []
        self.status_calls: list[tuple[str, PostStatus]] = []

    def upsert_many(self, items) -> int:
        batch = list(items)
        self.upserts.append(batch)
        inserted = 0
        for item in batch:
            if item.natural_key not in self.items:
                self.items[item.natural_key] = item
                inserted += 1
        return inserted

    def claim(self) -> Optional[ContentItem]:
        for key, item in sorted(self.items.items()):
            if item.status is PostStatus.NEW:
                self.items[key] = ContentItem(**{**item.__dict__, "status": PostStatus.USED, "used_at": 1})
                return self.items[key]
        return None

    def set_status(self, natural_key: str, status: PostStatus) -> bool:
        self.status_calls.append((natural_key, status))
        item = self.items.get(natural_key)
        if item is None:
            return False
        self.items[natural_key] = ContentItem(**{**item.__dict__, "status": status})
        return True

    def get(self, natural_key: str) -> Optional[ContentItem]:
        return self.items.get(natural_key)

    def list_page(self, status, page_size, page_index) -> PostPage:
        return PostPage(items=[], total=0, page_index=0, max_page=0, page_size=page_size)

    def stats(self) -> dict[PostStatus, int]:
        counts = {PostStatus.NEW: 0, PostStatus.USED: 0}
        for item in self.items.values():
            counts[item.status] += 1
        return counts


class FakePublisher:
    def __init__(self, fail_on: Optional[set[str]] = None) -> None:
        self.sent: list[tuple[object, tuple, str]] = []
        self._fail_on = fail_on or set()

    async def publish(self, chat, media, caption: str) -> None:
        if media[0] in self._fail_on:
            raise DeliveryError("chat not found")
        self.sent.append((chat, tuple(media), caption))


class FakePageSource:
    def __init__(self, entries: list[dict], error: Optional[Exception] = None) -> None:
        self._entries = entries
        self._error = error

    def fetch_page(self, count: int, offset: int) -> FeedPage:
        if self._error:
            raise self._error
        return FeedPage(entries=self._entries[offset : offset + count], total=len(self._entries))


def _fetcher(source) -> ContentFetcher:
    return ContentFetcher(source, FetchConfig(owner_key="-1"), sleep=lambda _: None)


def test_sync_stores_extracted_items() -> None:
    entries = [_photo_entry(1), {"id": 2, "text": "no photo"}, _photo_entry(3)]
    storage = FakeStorage()
    service = ContentService(storage, fetcher=_fetcher(FakePageSource(entries)))

    result = service.sync(100)

    assert (result.fetched, result.extracted, result.inserted) == (3, 2, 2)
    assert service.sync(100).inserted == 0


def test_sync_failure_writes_nothing() -> None:
    storage = FakeStorage()
    service = ContentService(storage, fetcher=_fetcher(FakePageSource([], error=TransportError("down"))))

    with pytest.raises(TransportError):
        service.sync(100)
    assert storage.upserts == []


def test_set_status_validates_at_boundary() -> None:
    storage = FakeStorage([_item(1)])
    service = ContentService(storage)

    assert service.set_status("-1_1", "used")
    with pytest.raises(ValidationError):
        service.set_status("-1_1", "skipped")
    assert storage.status_calls == [("-1_1", PostStatus.USED)]


def test_deliver_next_publishes_with_caption() -> None:
    storage = FakeStorage([_item(1), _item(2)])
    publisher = FakePublisher()
    service = ContentService(
        storage,
        publisher=publisher,
        caption_builder=lambda item: f"<b>{item.natural_key}</b>",
    )

    report = asyncio.run(service.deliver_next(chat=555, count=5))

    assert [item.natural_key for item in report.sent] == ["-1_1", "-1_2"]
    assert report.failure is None
    assert publisher.sent[0] == (555, ("u1",), "<b>-1_1</b>")
    assert service.stats() == {PostStatus.NEW: 0, PostStatus.USED: 2}


def test_deliver_next_returns_failed_item_to_pool() -> None:
    storage = FakeStorage([_item(1), _item(2)])
    service = ContentService(storage, publisher=FakePublisher(fail_on={"u2"}))

    report = asyncio.run(service.deliver_next(chat=1, count=3))

    assert [item.natural_key for item in report.sent] == ["-1_1"]
    assert report.failure == "chat not found"
    assert storage.items["-1_2"].status is PostStatus.NEW
    assert ("-1_2", PostStatus.NEW) in storage.status_calls


def test_deliver_next_caps_batch_size() -> None:
    storage = FakeStorage([_item(i) for i in range(5)])
    service = ContentService(storage, publisher=FakePublisher(), delivery_config=DeliveryConfig(max_batch=2))

    report = asyncio.run(service.deliver_next(chat=1, count=10))

    assert len(report.sent) == 2


def test_deliver_next_with_empty_pool() -> None:
    service = ContentService(FakeStorage(), publisher=FakePublisher())

    report = asyncio.run(service.deliver_next(chat=1))

    assert report.sent == []
    assert report.failure is None


class CrashingPublisher:
    def __init__(self, error: BaseException) -> None:
        self._error = error

    async def publish(self, chat, media, caption: str) -> None:
        raise self._error


def test_deliver_next_reverts_on_unexpected_publisher_error() -> None:
    storage = FakeStorage([_item(1)])
    service = ContentService(storage, publisher=CrashingPublisher(ValueError("Cannot find any entity")))

    with pytest.raises(ValueError):
        asyncio.run(service.deliver_next(chat="@missing"))

    assert storage.items["-1_1"].status is PostStatus.NEW
    assert storage.status_calls == [("-1_1", PostStatus.NEW)]


def test_deliver_next_reverts_on_timeout_with_real_storage(tmp_path) -> None:
    from adapters.sqlite_storage import SQLiteStorage
    from core.config import StorageConfig

    storage = SQLiteStorage(StorageConfig(db_path=str(tmp_path / "posts.db"), busy_timeout=10))
    storage.init_db()
    storage.upsert_many([_item(1)])
    service = ContentService(storage, publisher=CrashingPublisher(asyncio.TimeoutError()))

    with pytest.raises(asyncio.TimeoutError):
        asyncio.run(service.deliver_next(chat=1))

    assert storage.get("-1_1").status is PostStatus.NEW
    assert storage.get("-1_1").used_at == 0
