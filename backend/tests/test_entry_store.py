from __future__ import annotations

import json
import sys
import unittest
from datetime import date, datetime, timezone
from pathlib import Path

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.database import Base, enable_sqlite_foreign_keys
from app.models import Comment, DiaryEntry
from app.schemas import EntryPayload
from app.services import EntryFilters, EntryStore


def _payload(**overrides) -> EntryPayload:
    data = {
        "title": "t",
        "content": "c",
        "mediaUrls": [],
        "userEmail": "owner@example.com",
    }
    data.update(overrides)
    return EntryPayload.model_validate(data)


class EntryStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        enable_sqlite_foreign_keys(self.engine.sync_engine)
        self.session_factory = async_sessionmaker(self.engine, expire_on_commit=False)

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def asyncTearDown(self):
        await self.engine.dispose()

    async def _seed(self, *rows: dict) -> list[int]:
        ids: list[int] = []
        async with self.session_factory() as session:
            for row in rows:
                entry = DiaryEntry(
                    title=row.get("title", "t"),
                    content=row.get("content", "c"),
                    media_urls_json=row.get("media_urls_json", "[]"),
                    tags_json=row.get("tags_json", "[]"),
                    feeling_emoji=row.get("feeling_emoji"),
                    feeling_label=row.get("feeling_label"),
                    location=row.get("location"),
                    sensitive=row.get("sensitive", False),
                    user_email=row.get("user_email", "owner@example.com"),
                    created_at=row["created_at"],
                )
                session.add(entry)
                await session.flush()
                ids.append(entry.id)
            await session.commit()
        return ids

    async def test_create_then_get_roundtrip(self):
        async with self.session_factory() as session:
            store = EntryStore(session)
            created = await store.create_entry(
                _payload(
                    title="Morning",
                    content="Coffee",
                    mediaUrls=["/uploads/a.png", "/uploads/a.png", "/uploads/b.mp4"],
                    feeling={"emoji": "😊", "label": "happy"},
                    location="Paris",
                    sensitive=True,
                    tags=["trip", " "],
                    userEmail="Owner@Example.COM",
                )
            )
            await session.commit()

        async with self.session_factory() as session:
            got = await EntryStore(session).get_entry(created.id)

        self.assertIsNotNone(got)
        assert got is not None
        self.assertEqual(got.title, "Morning")
        self.assertEqual(got.content, "Coffee")
        # 重复 URL 保留，顺序不变
        self.assertEqual(got.media_urls_json, '["/uploads/a.png", "/uploads/a.png", "/uploads/b.mp4"]')
        self.assertEqual(got.tags_json, '["trip"]')
        self.assertEqual((got.feeling_emoji, got.feeling_label), ("😊", "happy"))
        self.assertEqual(got.location, "Paris")
        self.assertTrue(got.sensitive)
        self.assertEqual(got.user_email, "owner@example.com")
        self.assertIsNotNone(got.created_at)

    async def test_create_requires_owner(self):
        async with self.session_factory() as session:
            with self.assertRaises(ValueError):
                await EntryStore(session).create_entry(_payload(userEmail=None))

    async def test_update_keeps_owner_and_replaces_fields(self):
        (entry_id,) = await self._seed(
            {
                "title": "old",
                "feeling_emoji": "😢",
                "feeling_label": "sad",
                "location": "Rome",
                "created_at": datetime(2024, 1, 5, 8, 0, tzinfo=timezone.utc),
            }
        )

        async with self.session_factory() as session:
            updated = await EntryStore(session).update_entry(
                entry_id,
                _payload(title="new", mediaUrls=["/uploads/x.png"], userEmail="other@example.com"),
            )
            await session.commit()

        assert updated is not None
        self.assertEqual(updated.title, "new")
        self.assertEqual(updated.user_email, "owner@example.com")
        self.assertIsNone(updated.feeling_emoji)
        self.assertIsNone(updated.location)
        self.assertEqual(updated.media_urls_json, '["/uploads/x.png"]')

    async def test_update_and_delete_missing_entry(self):
        async with self.session_factory() as session:
            store = EntryStore(session)
            self.assertIsNone(await store.update_entry(999, _payload()))
            self.assertIsNone(await store.set_sensitive(999, True))
            self.assertFalse(await store.delete_entry(999))
            self.assertIsNone(await store.add_comment(999, "hi"))

    async def test_delete_entry_cascades_comments(self):
        ids = await self._seed(
            {"created_at": datetime(2024, 1, 1, tzinfo=timezone.utc)},
            {"created_at": datetime(2024, 1, 2, tzinfo=timezone.utc)},
        )

        async with self.session_factory() as session:
            store = EntryStore(session)
            await store.add_comment(ids[0], "one")
            await store.add_comment(ids[0], "two")
            await store.add_comment(ids[1], "keep")
            await session.commit()

        async with self.session_factory() as session:
            self.assertTrue(await EntryStore(session).delete_entry(ids[0]))
            await session.commit()

        async with self.session_factory() as session:
            orphan_count = await session.scalar(
                select(func.count()).select_from(Comment).where(Comment.entry_id == ids[0])
            )
            kept = await EntryStore(session).list_comments(ids[1])

        self.assertEqual(orphan_count, 0)
        self.assertEqual([c.content for c in kept], ["keep"])

    async def test_foreign_key_cascade_on_raw_delete(self):
        (entry_id,) = await self._seed({"created_at": datetime(2024, 1, 1, tzinfo=timezone.utc)})
        async with self.session_factory() as session:
            await EntryStore(session).add_comment(entry_id, "x")
            await session.commit()

        async with self.engine.begin() as conn:
            await conn.execute(text("DELETE FROM diary_entries WHERE id = :id"), {"id": entry_id})
            remaining = await conn.scalar(text("SELECT COUNT(*) FROM comments"))

        self.assertEqual(remaining, 0)

    async def test_list_orders_newest_first(self):
        ids = await self._seed(
            {"title": "a", "created_at": datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)},
            {"title": "b", "created_at": datetime(2024, 1, 3, 9, 0, tzinfo=timezone.utc)},
            {"title": "c", "created_at": datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)},
        )

        async with self.session_factory() as session:
            got = await EntryStore(session).list_entries()

        self.assertEqual([e.id for e in got], [ids[1], ids[2], ids[0]])

    async def test_email_filter_is_case_insensitive(self):
        await self._seed(
            {"title": "mine", "user_email": "foo@bar.com", "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc)},
            {"title": "theirs", "user_email": "x@y.com", "created_at": datetime(2024, 1, 2, tzinfo=timezone.utc)},
        )

        async with self.session_factory() as session:
            got = await EntryStore(session).list_entries(EntryFilters(email="Foo@Bar.com"))

        self.assertEqual([e.title for e in got], ["mine"])

    async def test_date_range_includes_whole_end_day(self):
        await self._seed(
            {"title": "before", "created_at": datetime(2023, 12, 31, 23, 59, tzinfo=timezone.utc)},
            {"title": "start", "created_at": datetime(2024, 1, 1, 0, 0, 1, tzinfo=timezone.utc)},
            {"title": "late", "created_at": datetime(2024, 1, 31, 23, 59, tzinfo=timezone.utc)},
            {"title": "after", "created_at": datetime(2024, 2, 1, 0, 0, 1, tzinfo=timezone.utc)},
        )

        async with self.session_factory() as session:
            got = await EntryStore(session).list_entries(
                EntryFilters(start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))
            )

        self.assertEqual([e.title for e in got], ["late", "start"])

    async def test_feeling_location_tag_filters(self):
        await self._seed(
            {
                "title": "happy-paris",
                "feeling_emoji": "😊",
                "feeling_label": "Happy",
                "location": "Paris, France",
                "tags_json": '["travel", "food"]',
                "created_at": datetime(2024, 3, 1, tzinfo=timezone.utc),
            },
            {
                "title": "sad-rome",
                "feeling_emoji": "😢",
                "feeling_label": "Sad",
                "location": "Rome",
                "tags_json": '["work"]',
                "created_at": datetime(2024, 3, 2, tzinfo=timezone.utc),
            },
        )

        async with self.session_factory() as session:
            store = EntryStore(session)
            by_feeling = await store.list_entries(EntryFilters(feeling="happy"))
            by_emoji = await store.list_entries(EntryFilters(feeling="😢"))
            by_location = await store.list_entries(EntryFilters(location="paris"))
            by_tag = await store.list_entries(EntryFilters(tag="WORK"))
            by_wildcard = await store.list_entries(EntryFilters(location="%"))

        self.assertEqual([e.title for e in by_feeling], ["happy-paris"])
        self.assertEqual([e.title for e in by_emoji], ["sad-rome"])
        self.assertEqual([e.title for e in by_location], ["happy-paris"])
        self.assertEqual([e.title for e in by_tag], ["sad-rome"])
        self.assertEqual(by_wildcard, [])

    async def test_tag_filter_matches_each_tag_not_json_text(self):
        await self._seed(
            {"title": "untagged", "tags_json": "[]", "created_at": datetime(2024, 3, 1, tzinfo=timezone.utc)},
            {
                "title": "two-tags",
                "tags_json": json.dumps(["work", "home"]),
                "created_at": datetime(2024, 3, 2, tzinfo=timezone.utc),
            },
            {
                "title": "quoted",
                "tags_json": json.dumps(['say "hi"'], ensure_ascii=False),
                "created_at": datetime(2024, 3, 3, tzinfo=timezone.utc),
            },
        )

        async with self.session_factory() as session:
            store = EntryStore(session)
            by_bracket = await store.list_entries(EntryFilters(tag="["))
            by_separator = await store.list_entries(EntryFilters(tag='", "'))
            by_quoted = await store.list_entries(EntryFilters(tag='SAY "hi'))
            by_partial = await store.list_entries(EntryFilters(tag="om"))

        self.assertEqual(by_bracket, [])
        self.assertEqual(by_separator, [])
        self.assertEqual([e.title for e in by_quoted], ["quoted"])
        self.assertEqual([e.title for e in by_partial], ["two-tags"])

    async def test_blank_filters_are_ignored(self):
        await self._seed(
            {"created_at": datetime(2024, 1, 1, tzinfo=timezone.utc)},
            {"created_at": datetime(2024, 1, 2, tzinfo=timezone.utc), "user_email": "x@y.com"},
        )

        async with self.session_factory() as session:
            got = await EntryStore(session).list_entries(
                EntryFilters(email="  ", feeling="", location=" ", tag="")
            )

        self.assertEqual(len(got), 2)

    async def test_limit_and_offset(self):
        ids = await self._seed(
            *[{"created_at": datetime(2024, 1, day, tzinfo=timezone.utc)} for day in range(1, 6)]
        )

        async with self.session_factory() as session:
            page = await EntryStore(session).list_entries(EntryFilters(limit=2, offset=1))

        self.assertEqual([e.id for e in page], [ids[3], ids[2]])

    async def test_comments_newest_first_and_scoped_delete(self):
        ids = await self._seed(
            {"created_at": datetime(2024, 1, 1, tzinfo=timezone.utc)},
            {"created_at": datetime(2024, 1, 2, tzinfo=timezone.utc)},
        )

        async with self.session_factory() as session:
            store = EntryStore(session)
            c1 = await store.add_comment(ids[0], "first")
            c2 = await store.add_comment(ids[0], "second")
            await session.commit()

        assert c1 is not None and c2 is not None
        async with self.session_factory() as session:
            store = EntryStore(session)
            listed = await store.list_comments(ids[0])
            # 评论不属于这篇日记时不能删
            self.assertFalse(await store.delete_comment(ids[1], c1.id))
            self.assertTrue(await store.delete_comment(ids[0], c1.id))
            await session.commit()
            remaining = await store.list_comments(ids[0])

        self.assertEqual([c.id for c in listed], [c2.id, c1.id])
        self.assertEqual([c.id for c in remaining], [c2.id])


if __name__ == "__main__":
    unittest.main()
