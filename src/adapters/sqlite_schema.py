"""SQLite schema creation and in-place upgrades for the posts table."""

from __future__ import annotations

import logging
import sqlite3

LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# Columns added after the first release. Older databases only carry the
# identity and content columns, so each of these may be missing.
_LATE_COLUMNS = {
    "media_json": "ALTER TABLE posts ADD COLUMN media_json TEXT NOT NULL DEFAULT '[]'",
    "status": "ALTER TABLE posts ADD COLUMN status TEXT NOT NULL DEFAULT 'new'",
    "created_at": "ALTER TABLE posts ADD COLUMN created_at INTEGER NOT NULL DEFAULT 0",
    "updated_at": "ALTER TABLE posts ADD COLUMN updated_at INTEGER NOT NULL DEFAULT 0",
    "used_at": "ALTER TABLE posts ADD COLUMN used_at INTEGER NOT NULL DEFAULT 0",
}


class SchemaManager:
    """Creates the posts table and brings older layouts up to date."""

    def ensure(self, conn: sqlite3.Connection) -> int:
        """Create or upgrade the schema, then normalize stored rows.

        Table:
        - posts: one row per feed post, keyed by natural_key

        Returns the number of rows rewritten by normalization, which is
        zero on every run after the first.
        """

        # posts is the only table. Fields:
        # - natural_key: "<owner>_<item>" (PRIMARY KEY)
        # - owner_key / item_key: raw feed identifiers
        # - permalink: link to the original post
        # - text: post body, may be empty
        # - media_json: JSON array of photo URLs, order preserved
        # - status: 'new' or 'used'
        # - created_at / updated_at / used_at: unix seconds, used_at=0 unless used
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS posts (
                natural_key TEXT PRIMARY KEY,
                owner_key TEXT NOT NULL,
                item_key TEXT NOT NULL,
                permalink TEXT NOT NULL,
                text TEXT NOT NULL,
                media_json TEXT NOT NULL DEFAULT '[]',
                status TEXT NOT NULL DEFAULT 'new',
                created_at INTEGER NOT NULL DEFAULT 0,
                updated_at INTEGER NOT NULL DEFAULT 0,
                used_at INTEGER NOT NULL DEFAULT 0
            )
            """
        )

        columns = self.table_columns(conn, "posts")
        for name, ddl in _LATE_COLUMNS.items():
            if name not in columns:
                LOGGER.info("Adding missing column posts.%s", name)
                conn.execute(ddl)

        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_posts_status_createdat ON posts(status, created_at DESC)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_posts_status_usedat ON posts(status, used_at DESC)"
        )

        touched = self.normalize(conn)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        if touched:
            LOGGER.info("Normalized %s legacy post rows", touched)
        return touched

    def normalize(self, conn: sqlite3.Connection) -> int:
        """Fold unknown statuses into 'new' and repair used_at."""

        touched = 0
        # Transitional statuses (e.g. 'reserved', 'skipped') are not part of
        # the lifecycle any more; those posts go back to the pool.
        cur = conn.execute(
            "UPDATE posts SET status = 'new', used_at = 0 WHERE status NOT IN ('new', 'used')"
        )
        touched += cur.rowcount
        cur = conn.execute(
            """
            UPDATE posts
            SET used_at = CASE
                WHEN updated_at > 0 THEN updated_at
                WHEN created_at > 0 THEN created_at
                ELSE used_at
            END
            WHERE status = 'used' AND used_at = 0 AND (updated_at > 0 OR created_at > 0)
            """
        )
        touched += cur.rowcount
        cur = conn.execute("UPDATE posts SET used_at = 0 WHERE status = 'new' AND used_at <> 0")
        touched += cur.rowcount
        return touched

    @staticmethod
    def table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
        """Return the column names of ``table``."""

        rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
        return {row[1] for row in rows}
