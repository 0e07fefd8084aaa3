"""Shared message formatting helpers.

Keeping formatting here prevents drift between the bot and the CLI and keeps
captions consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from datetime import datetime

from core.models import ContentItem, PostPage, PostStatus

# Telegram counts the caption limit on visible text, after entity parsing.
CAPTION_LIMIT = 1024
DETAILS_TEXT_LIMIT = 800
ORIGINAL_LABEL = "Original"
DEFAULT_ARCHIVE_TAG = "#archive"


def normalize_tag(tag: str) -> str:
    """Return the tag with exactly one leading '#', or the default tag."""

    tag = tag.strip()
    if not tag:
        return DEFAULT_ARCHIVE_TAG
    if not tag.startswith("#"):
        tag = f"#{tag}"
    return tag


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    if limit <= 1:
        return text[:limit]
    return text[: limit - 1].rstrip() + "…"


def utf16_len(text: str) -> int:
    """Length as Telegram counts it: UTF-16 code units."""

    return len(text.encode("utf-16-le")) // 2


def _clip_utf16(text: str, limit: int) -> str:
    if utf16_len(text) <= limit:
        return text
    if limit <= 0:
        return ""
    # Reserve one unit for the ellipsis and never split a surrogate pair.
    budget = limit - 1
    used = 0
    end = 0
    for end, char in enumerate(text):
        width = 2 if ord(char) > 0xFFFF else 1
        if used + width > budget:
            break
        used += width
    return text[:end].rstrip() + "…"


def build_caption_html(item: ContentItem, archive_tag: str) -> str:
    """Create the HTML caption attached to the first photo of an album."""

    tag = normalize_tag(archive_tag)
    # Visible footer: "\n\n" + tag + "\n" + label.
    footer_len = utf16_len(tag) + utf16_len(ORIGINAL_LABEL) + 3
    text = _clip_utf16(item.text.strip(), max(0, CAPTION_LIMIT - footer_len))

    parts = []
    if text:
        parts.extend([html.escape(text), ""])
    parts.append(html.escape(tag))
    parts.append(f"<a href=\"{html.escape(item.permalink)}\">{ORIGINAL_LABEL}</a>")
    return "\n".join(parts)


def format_stats(counts: dict[PostStatus, int]) -> str:
    return f"Stats: new={counts.get(PostStatus.NEW, 0)} used={counts.get(PostStatus.USED, 0)}"


def _format_ts(value: int) -> str:
    if not value:
        return "—"
    return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M:%S")


def format_post_page(page: PostPage, status: PostStatus) -> str:
    """Plain-text listing of one page; page numbers are shown 1-based."""

    lines = [
        f"{status.value}: page {page.page_index + 1}/{page.max_page + 1} (total {page.total})",
        "",
    ]
    if not page.items:
        lines.append("Empty.")
        return "\n".join(lines)

    first = page.page_index * page.page_size
    for number, item in enumerate(page.items, start=first + 1):
        lines.append(f"{number}) {item.natural_key} | photos={len(item.media)} | {item.permalink}")
    return "\n".join(lines)


def format_post_details(item: ContentItem) -> str:
    """Plain-text details of one stored post."""

    text = _clip(item.text.strip(), DETAILS_TEXT_LIMIT)
    return "\n".join(
        [
            "Post",
            "",
            f"key: {item.natural_key}",
            f"status: {item.status.value}",
            f"photos: {len(item.media)}",
            f"created_at: {_format_ts(item.created_at)}",
            f"used_at: {_format_ts(item.used_at)}",
            f"link: {item.permalink}",
            "",
            "text:",
            text,
        ]
    )
