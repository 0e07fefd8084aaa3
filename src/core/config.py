"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass

# VK wall.get refuses more than 100 items per request.
MAX_PAGE_SIZE = 100
# Telegram albums hold at most 10 photos.
MAX_MEDIA_PER_POST = 10


@dataclass(frozen=True)
class FetchConfig:
    """Feed pagination settings."""

    owner_key: str
    page_size: int = MAX_PAGE_SIZE
    page_delay: float = 0.35
    max_media: int = MAX_MEDIA_PER_POST


@dataclass(frozen=True)
class StorageConfig:
    """SQLite location and lock wait."""

    db_path: str
    busy_timeout: float = 30.0


@dataclass(frozen=True)
class DeliveryConfig:
    """Settings for handing claimed posts to the publisher."""

    archive_tag: str = "#archive"
    max_batch: int = 10


@dataclass(frozen=True)
class ListingConfig:
    """Paging settings for operator-facing listings."""

    page_size: int = 10
