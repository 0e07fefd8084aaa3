"""SQLite storage adapter.

Implements the core PostRepositoryPort using a single SQLite database file.
Every operation opens its own connection so the repository can be shared by
threads; writes are serialized through one lock and BEGIN IMMEDIATE.
"""

from __future__ import annotations

import json
import logging
import random
import sqlite3
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, Optional, Union

from adapters.sqlite_schema import SchemaManager
from core.config import MAX_MEDIA_PER_POST, StorageConfig
from core.errors import StorageError, ValidationError
from core.models import ContentItem, PostPage, PostStatus

LOGGER = logging.getLogger(__name__)

_COLUMNS = (
    "natural_key, owner_key, item_key, permalink, text, media_json, "
    "status, created_at, updated_at, used_at"
)

# Ordering per status; natural_key keeps pages stable on equal timestamps.
_ORDER_BY = {
    PostStatus.NEW: "created_at DESC, natural_key ASC",
    PostStatus.USED: "used_at DESC, natural_key ASC",
}

# Anything that is not 'used' counts as new, matching PostStatus.from_storage.
_WHERE = {
    PostStatus.NEW: "status <> 'used'",
    PostStatus.USED: "status = 'used'",
}


def _row_to_item(row: sqlite3.Row) -> ContentItem:
    try:
        media = json.loads(row["media_json"] or "[]")
    except ValueError:
        media = []
    return ContentItem(
        owner_key=row["owner_key"],
        item_key=row["item_key"],
        natural_key=row["natural_key"],
        permalink=row["permalink"],
        text=row["text"],
        media=tuple(str(url) for url in media),
        status=PostStatus.from_storage(row["status"]),
        created_at=int(row["created_at"]),
        updated_at=int(row["updated_at"]),
        used_at=int(row["used_at"]),
    )


def _validate_item(item: ContentItem) -> None:
    if not item.natural_key:
        raise ValidationError("Post without a natural key")
    if not item.media or len(item.media) > MAX_MEDIA_PER_POST:
        raise ValidationError(
            f"Post {item.natural_key} has {len(item.media)} media, expected 1..{MAX_MEDIA_PER_POST}"
        )


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the PostRepositoryPort contract."""

    def __init__(
        self,
        config: StorageConfig,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
        schema: Optional[SchemaManager] = None,
    ) -> None:
        self._config = config
        self._clock = clock
        self._rng = rng or random.Random()
        self._schema = schema or SchemaManager()
        self._write_lock = threading.Lock()

    def _now(self) -> int:
        return int(self._clock())

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly in _write().
        conn = sqlite3.connect(
            self._config.db_path,
            timeout=self._config.busy_timeout,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open {self._config.db_path}: {exc}") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            raise StorageError(str(exc)) from exc
        finally:
            conn.close()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        """Run the block in one IMMEDIATE transaction, rolled back on any error."""

        with self._write_lock, self._read() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StorageError(f"Cannot start transaction: {exc}") from exc
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            try:
                conn.commit()
            except sqlite3.Error as exc:
                raise StorageError(f"Commit failed: {exc}") from exc

    def init_db(self) -> int:
        """Create or upgrade the schema; returns rows normalized."""

        with self._write() as conn:
            return self._schema.ensure(conn)

    def upsert_many(self, items: Iterable[ContentItem]) -> int:
        """Insert unseen posts and refresh content of known ones.

        Status, created_at and used_at of existing rows are never touched.
        The whole batch commits or nothing does.
        """

        batch = list(items)
        if not batch:
            return 0
        for item in batch:
            _validate_item(item)

        now = self._now()
        inserted = 0
        with self._write() as conn:
            for item in batch:
                media_json = json.dumps(list(item.media), ensure_ascii=False)
                cur = conn.execute(
                    """
                    INSERT OR IGNORE INTO posts (
                        natural_key, owner_key, item_key, permalink, text, media_json,
                        status, created_at, updated_at, used_at
                    ) VALUES (?, ?, ?, ?, ?, ?, 'new', ?, ?, 0)
                    """,
                    (
                        item.natural_key,
                        item.owner_key,
                        item.item_key,
                        item.permalink,
                        item.text,
                        media_json,
                        now,
                        now,
                    ),
                )
                if cur.rowcount > 0:
                    inserted += cur.rowcount
                    continue
                conn.execute(
                    """
                    UPDATE posts
                    SET permalink = ?, text = ?, media_json = ?, updated_at = MAX(updated_at, ?)
                    WHERE natural_key = ?
                    """,
                    (item.permalink, item.text, media_json, now, item.natural_key),
                )
        LOGGER.info("Upserted %s posts (%s new)", len(batch), inserted)
        return inserted

    def claim(self) -> Optional[ContentItem]:
        """Pick a random NEW post and mark it USED atomically.

        Returns None when the pool is empty or when the chosen row was
        claimed by someone else first; callers may simply retry.
        """

        now = self._now()
        with self._write() as conn:
            eligible = conn.execute(f"SELECT COUNT(*) FROM posts WHERE {_WHERE[PostStatus.NEW]}").fetchone()[0]
            if not eligible:
                return None

            offset = self._rng.randrange(eligible)
            row = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM posts
                WHERE {_WHERE[PostStatus.NEW]}
                ORDER BY {_ORDER_BY[PostStatus.NEW]}
                LIMIT 1 OFFSET ?
                """,
                (offset,),
            ).fetchone()
            if row is None:
                return None

            # Only succeeds if nobody moved the row out of the pool meanwhile.
            cur = conn.execute(
                f"""
                UPDATE posts
                SET status = 'used', used_at = ?, updated_at = MAX(updated_at, ?)
                WHERE natural_key = ? AND {_WHERE[PostStatus.NEW]}
                """,
                (now, now, row["natural_key"]),
            )
            if cur.rowcount == 0:
                LOGGER.info("Claim of %s lost a race", row["natural_key"])
                return None

            claimed = conn.execute(
                f"SELECT {_COLUMNS} FROM posts WHERE natural_key = ?",
                (row["natural_key"],),
            ).fetchone()
        LOGGER.info("Claimed %s", claimed["natural_key"])
        return _row_to_item(claimed)

    def set_status(self, natural_key: str, status: Union[PostStatus, str]) -> bool:
        """Move a post to ``status``; returns False if the key is unknown."""

        status = PostStatus.parse(status)
        now = self._now()
        used_at = now if status is PostStatus.USED else 0
        with self._write() as conn:
            cur = conn.execute(
                """
                UPDATE posts
                SET status = ?, used_at = ?, updated_at = MAX(updated_at, ?)
                WHERE natural_key = ?
                """,
                (status.value, used_at, now, natural_key),
            )
            found = cur.rowcount > 0
        if found:
            LOGGER.info("Status of %s set to %s", natural_key, status.value)
        return found

    def get(self, natural_key: str) -> Optional[ContentItem]:
        """Return one post by natural key, if stored."""

        with self._read() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM posts WHERE natural_key = ?",
                (natural_key,),
            ).fetchone()
        return _row_to_item(row) if row else None

    def count_by_status(self, status: Union[PostStatus, str]) -> int:
        status = PostStatus.parse(status)
        with self._read() as conn:
            row = conn.execute(f"SELECT COUNT(*) FROM posts WHERE {_WHERE[status]}").fetchone()
        return int(row[0])

    def list_page(self, status: Union[PostStatus, str], page_size: int, page_index: int) -> PostPage:
        """Return one page of posts in ``status``, clamping the page index."""

        status = PostStatus.parse(status)
        page_size = max(1, page_size)
        with self._read() as conn:
            total = int(conn.execute(f"SELECT COUNT(*) FROM posts WHERE {_WHERE[status]}").fetchone()[0])
            max_page = (total - 1) // page_size if total > 0 else 0
            page_index = min(max(page_index, 0), max_page)
            rows = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM posts
                WHERE {_WHERE[status]}
                ORDER BY {_ORDER_BY[status]}
                LIMIT ? OFFSET ?
                """,
                (page_size, page_index * page_size),
            ).fetchall()
        return PostPage(
            items=[_row_to_item(row) for row in rows],
            total=total,
            page_index=page_index,
            max_page=max_page,
            page_size=page_size,
        )

    def stats(self) -> dict[PostStatus, int]:
        """Return counts for both statuses; legacy values count as NEW."""

        counts = {PostStatus.NEW: 0, PostStatus.USED: 0}
        with self._read() as conn:
            rows = conn.execute("SELECT status, COUNT(*) AS n FROM posts GROUP BY status").fetchall()
        for row in rows:
            counts[PostStatus.from_storage(row["status"])] += int(row["n"])
        return counts
