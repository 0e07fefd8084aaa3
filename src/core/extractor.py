"""Turn raw VK wall entries into content items (core domain).

Extraction is a pure function of its input so it can be re-run on cached
pages and tested without any network access.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional

from core.config import MAX_MEDIA_PER_POST
from core.models import ContentItem
from core.post_keys import build_natural_key, build_permalink


def _is_flagged(entry: dict, flag: str) -> bool:
    return entry.get(flag) in (1, True)


def _area(size: dict) -> int:
    try:
        return int(size.get("width") or 0) * int(size.get("height") or 0)
    except (TypeError, ValueError):
        return 0


def best_photo_url(photo: Optional[dict]) -> Optional[str]:
    """Return the URL of the largest variant by pixel area.

    Variants without a URL are ignored; on equal areas the first one wins.
    """

    if not photo:
        return None
    best_url: Optional[str] = None
    best_area = -1
    for size in photo.get("sizes") or []:
        if not isinstance(size, dict):
            continue
        url = size.get("url")
        if not url:
            continue
        area = _area(size)
        if area > best_area:
            best_area = area
            best_url = url
    return best_url


def collect_media(attachments: Iterable[Any], max_media: int = MAX_MEDIA_PER_POST) -> List[str]:
    """Collect the best URL of each photo attachment, in attachment order."""

    media: List[str] = []
    for attachment in attachments or []:
        if len(media) >= max_media:
            break
        if not isinstance(attachment, dict) or attachment.get("type") != "photo":
            continue
        url = best_photo_url(attachment.get("photo"))
        if url:
            media.append(url)
    return media


def extract_items(
    entries: Iterable[Any],
    owner_key: str,
    max_media: int = MAX_MEDIA_PER_POST,
) -> List[ContentItem]:
    """Build candidate items from wall entries.

    Rules:
    - Pinned and advertising entries are skipped whatever they carry.
    - Entries without a single usable photo are skipped.
    - Output keeps the input order.
    """

    items: List[ContentItem] = []
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("id") is None:
            continue
        if _is_flagged(entry, "is_pinned") or _is_flagged(entry, "marked_as_ads"):
            continue

        media = collect_media(entry.get("attachments") or [], max_media)
        if not media:
            continue

        item_key = str(entry["id"])
        natural_key = build_natural_key(owner_key, item_key)
        items.append(
            ContentItem(
                owner_key=owner_key,
                item_key=item_key,
                natural_key=natural_key,
                permalink=build_permalink(natural_key),
                text=entry.get("text") or "",
                media=tuple(media),
            )
        )
    return items
