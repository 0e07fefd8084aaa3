"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for the feed, storage and publishing
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Sequence, Union

from core.models import ContentItem, FeedPage, PostPage, PostStatus


class PageSourcePort(Protocol):
    """One-page read access to the external feed."""

    def fetch_page(self, count: int, offset: int) -> FeedPage:
        ...


class PostRepositoryPort(Protocol):
    """Storage operations required by the core pipeline."""

    def upsert_many(self, items: Iterable[ContentItem]) -> int:
        ...

    def claim(self) -> Optional[ContentItem]:
        ...

    def set_status(self, natural_key: str, status: Union[PostStatus, str]) -> bool:
        ...

    def get(self, natural_key: str) -> Optional[ContentItem]:
        ...

    def list_page(self, status: Union[PostStatus, str], page_size: int, page_index: int) -> PostPage:
        ...

    def count_by_status(self, status: Union[PostStatus, str]) -> int:
        ...

    def stats(self) -> dict[PostStatus, int]:
        ...


class PublisherPort(Protocol):
    """Delivery of one post to a chat."""

    async def publish(self, chat: Union[int, str], media: Sequence[str], caption: str) -> None:
        ...
