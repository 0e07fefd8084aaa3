"""Sequential feed pagination (core domain)."""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from core.config import MAX_PAGE_SIZE, FetchConfig
from core.extractor import extract_items
from core.models import ContentItem
from core.ports import PageSourcePort

LOGGER = logging.getLogger(__name__)


class ContentFetcher:
    """Walks the feed page by page and extracts qualifying posts."""

    def __init__(
        self,
        source: PageSourcePort,
        config: FetchConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._source = source
        self._config = config
        self._sleep = sleep

    @property
    def page_size(self) -> int:
        return max(1, min(self._config.page_size, MAX_PAGE_SIZE))

    def fetch_all(self, max_items: int) -> List[dict]:
        """Return raw entries in feed order.

        ``max_items <= 0`` walks the whole feed. Any transport or protocol
        error propagates and nothing collected so far is returned.
        """

        entries: List[dict] = []
        offset = 0
        total: Optional[int] = None

        while True:
            want = self.page_size
            if max_items > 0:
                remaining = max_items - len(entries)
                if remaining <= 0:
                    break
                want = min(want, remaining)
            if total is not None:
                want = min(want, total - offset)

            page = self._source.fetch_page(want, offset)
            if total is None:
                total = page.total
            LOGGER.debug("Fetched %s entries at offset %s (total %s)", len(page.entries), offset, total)

            if not page.entries:
                break

            entries.extend(page.entries)
            offset += len(page.entries)

            # The feed shrank or we reached its end.
            if offset >= total:
                break

            # Throttle to stay under the upstream rate limit.
            self._sleep(self._config.page_delay)

        return entries

    def extract(self, entries: List[dict]) -> List[ContentItem]:
        """Extract items from entries fetched for the configured owner."""

        return extract_items(entries, self._config.owner_key, self._config.max_media)
