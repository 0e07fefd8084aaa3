"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Tuple

from core.errors import ValidationError


class PostStatus(str, Enum):
    """Delivery lifecycle of a stored post."""

    NEW = "new"
    USED = "used"

    @classmethod
    def parse(cls, value: Any) -> "PostStatus":
        """Strictly convert user or caller input into a status."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValidationError(f"Unsupported status: {value!r}")

    @classmethod
    def from_storage(cls, value: Any) -> "PostStatus":
        """Read a stored status, folding legacy values into NEW."""

        if value == cls.USED.value:
            return cls.USED
        return cls.NEW


@dataclass(frozen=True)
class ContentItem:
    """One feed post with its photo album and delivery state."""

    owner_key: str
    item_key: str
    natural_key: str
    permalink: str
    text: str
    media: Tuple[str, ...]
    status: PostStatus = PostStatus.NEW
    created_at: int = 0
    updated_at: int = 0
    used_at: int = 0


@dataclass(frozen=True)
class FeedPage:
    """A raw page of feed entries plus the total the feed reported."""

    entries: list[dict]
    total: int


@dataclass(frozen=True)
class PostPage:
    """One clamped page of a status listing."""

    items: list[ContentItem]
    total: int
    page_index: int
    max_page: int
    page_size: int


@dataclass(frozen=True)
class SyncResult:
    """Counts produced by one feed sync."""

    fetched: int
    extracted: int
    inserted: int


@dataclass
class DeliveryReport:
    """Outcome of a deliver-next run."""

    sent: list[ContentItem] = field(default_factory=list)
    failure: Optional[str] = None
