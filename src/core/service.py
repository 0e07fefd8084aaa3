"""Feed sync and delivery orchestration.

This module is integration-agnostic. It only relies on ports for the feed,
storage and publishing, so the bot and the CLI drive the same code path.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Union

from core.config import DeliveryConfig
from core.errors import DeliveryError
from core.fetcher import ContentFetcher
from core.models import ContentItem, DeliveryReport, PostPage, PostStatus, SyncResult
from core.ports import PostRepositoryPort, PublisherPort

LOGGER = logging.getLogger(__name__)

CaptionBuilder = Callable[[ContentItem], str]


class ContentService:
    """Entry points exposed to the trigger surface."""

    def __init__(
        self,
        repository: PostRepositoryPort,
        fetcher: Optional[ContentFetcher] = None,
        publisher: Optional[PublisherPort] = None,
        caption_builder: Optional[CaptionBuilder] = None,
        delivery_config: Optional[DeliveryConfig] = None,
    ) -> None:
        self._repository = repository
        self._fetcher = fetcher
        self._publisher = publisher
        self._caption_builder = caption_builder or (lambda item: item.text)
        self._delivery = delivery_config or DeliveryConfig()

    def sync(self, max_items: int) -> SyncResult:
        """Fetch, extract and store posts; return how many were new.

        Fetch errors propagate before anything is written.
        """

        if self._fetcher is None:
            raise RuntimeError("ContentService was built without a fetcher")

        entries = self._fetcher.fetch_all(max_items)
        items = self._fetcher.extract(entries)
        inserted = self._repository.upsert_many(items)
        LOGGER.info("Sync complete: fetched=%s extracted=%s inserted=%s", len(entries), len(items), inserted)
        return SyncResult(fetched=len(entries), extracted=len(items), inserted=inserted)

    def claim(self) -> Optional[ContentItem]:
        return self._repository.claim()

    def set_status(self, natural_key: str, status: Union[PostStatus, str]) -> bool:
        return self._repository.set_status(natural_key, PostStatus.parse(status))

    def get(self, natural_key: str) -> Optional[ContentItem]:
        return self._repository.get(natural_key)

    def list_page(self, status: Union[PostStatus, str], page_size: int, page_index: int) -> PostPage:
        return self._repository.list_page(PostStatus.parse(status), page_size, page_index)

    def stats(self) -> dict[PostStatus, int]:
        return self._repository.stats()

    async def deliver_next(self, chat: Union[int, str], count: int = 1) -> DeliveryReport:
        """Claim and publish up to ``count`` posts.

        A claimed post that fails to publish goes back to NEW and the run
        stops there.
        """

        if self._publisher is None:
            raise RuntimeError("ContentService was built without a publisher")

        count = max(1, min(count, self._delivery.max_batch))
        report = DeliveryReport()
        for _ in range(count):
            item = await asyncio.to_thread(self._repository.claim)
            if item is None:
                break

            caption = self._caption_builder(item)
            try:
                await self._publisher.publish(chat, item.media, caption)
            except DeliveryError as exc:
                LOGGER.warning("Delivery of %s failed, returning it to the pool: %s", item.natural_key, exc)
                await asyncio.to_thread(self._repository.set_status, item.natural_key, PostStatus.NEW)
                report.failure = str(exc)
                break
            except BaseException:
                # Unexpected publisher errors must not leave the post claimed.
                LOGGER.exception("Unexpected error delivering %s, returning it to the pool", item.natural_key)
                await asyncio.to_thread(self._repository.set_status, item.natural_key, PostStatus.NEW)
                raise

            # The claim already marked it used; this refreshes used_at to the delivery time.
            await asyncio.to_thread(self._repository.set_status, item.natural_key, PostStatus.USED)
            report.sent.append(item)
            LOGGER.info("Delivered %s to %s", item.natural_key, chat)

        return report
