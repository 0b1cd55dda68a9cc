from __future__ import annotations

import sys
import unittest
from pathlib import Path

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.database import _ensure_schema


class EnsureSchemaTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        # 早期版本的表结构：没有 sensitive / tags_json
        async with self.engine.begin() as conn:
            await conn.execute(
                text(
                    "CREATE TABLE diary_entries ("
                    "id INTEGER PRIMARY KEY, "
                    "title TEXT, "
                    "content TEXT, "
                    "media_urls_json TEXT, "
                    "user_email VARCHAR(255), "
                    "created_at TEXT"
                    ")"
                )
            )
            await conn.execute(
                text(
                    "CREATE TABLE comments ("
                    "id INTEGER PRIMARY KEY, "
                    "entry_id INTEGER, "
                    "content TEXT, "
                    "created_at TEXT"
                    ")"
                )
            )
            await conn.execute(
                text(
                    "INSERT INTO diary_entries (id, title, content, media_urls_json, user_email, created_at) "
                    "VALUES (1, 'old', 'x', '[]', 'a@b.c', '2023-05-01 10:00:00')"
                )
            )

    async def asyncTearDown(self):
        await self.engine.dispose()

    async def _table_cols(self, table: str) -> set[str]:
        async with self.engine.connect() as conn:
            result = await conn.execute(text(f"PRAGMA table_info({table})"))
            return {row[1] for row in result.fetchall()}

    async def _table_indexes(self, table: str) -> set[str]:
        async with self.engine.connect() as conn:
            result = await conn.execute(text(f"PRAGMA index_list({table})"))
            return {row[1] for row in result.fetchall()}

    async def test_adds_missing_columns_and_indexes_idempotently(self):
        async with self.engine.begin() as conn:
            await _ensure_schema(conn)

        cols = await self._table_cols("diary_entries")
        self.assertIn("sensitive", cols)
        self.assertIn("tags_json", cols)

        entry_indexes = await self._table_indexes("diary_entries")
        self.assertIn("idx_diary_entries_created_at_desc", entry_indexes)
        self.assertIn("idx_diary_entries_user_created", entry_indexes)
        self.assertIn("idx_comments_entry_created", await self._table_indexes("comments"))

        async with self.engine.connect() as conn:
            row = (await conn.execute(text("SELECT sensitive, tags_json FROM diary_entries WHERE id = 1"))).one()
        self.assertEqual(row[0], 0)
        self.assertEqual(row[1], "[]")

        async with self.engine.begin() as conn:
            await _ensure_schema(conn)


if __name__ == "__main__":
    unittest.main()
