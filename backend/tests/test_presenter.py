from __future__ import annotations

import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from app.client.api import EntryApiClient
from app.client.composer import DraftState
from app.client.errors import ApiError, AuthChallengeError
from app.client.platform import FileCamera, HeadlessNavigator, MemoryStorage, Platform
from app.client.presenter import (
    RETRY_MESSAGE,
    ROUTE_LIST,
    ROUTE_NEW,
    JournalPresenter,
    edit_route,
    entry_route,
)
from app.client.settings import SettingsStore
from app.client.uploads import UploadClient
from app.config import settings
from app.database import Base, enable_sqlite_foreign_keys, get_db
from app.main import app


class JournalPresenterTests(unittest.IsolatedAsyncioTestCase):
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

        async def override_get_db():
            async with self.session_factory() as session:
                yield session

        app.dependency_overrides[get_db] = override_get_db

        self._tmp = tempfile.TemporaryDirectory()
        self._patches = [
            patch.object(settings, "upload_dir", str(Path(self._tmp.name) / "uploads")),
            patch.object(settings, "protection_password", "open-sesame"),
            patch.object(settings, "protection_password_hash", None),
        ]
        for p in self._patches:
            p.start()

        photo = Path(self._tmp.name) / "photo.png"
        photo.write_bytes(b"\x89PNG fake image")
        self.camera = FileCamera([photo])
        self.nav = HeadlessNavigator()
        self.settings_store = SettingsStore(MemoryStorage())

        self.http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        self.api = EntryApiClient(self.http)
        self.presenter = JournalPresenter(
            self.api,
            UploadClient(self.http),
            Platform(storage=MemoryStorage(), camera=self.camera, navigation=self.nav),
            self.settings_store.current,
            user_email="Foo@Bar.com",
        )

    async def asyncTearDown(self):
        await self.http.aclose()
        for p in reversed(self._patches):
            p.stop()
        app.dependency_overrides.pop(get_db, None)
        self._tmp.cleanup()
        await self.engine.dispose()

    async def _create(self, **fields) -> int:
        composer = self.presenter.new_draft()
        composer.update_fields(title="Entry", content="Body", **fields)
        entry = await self.presenter.submit_draft()
        assert entry is not None
        return entry.id

    async def test_compose_with_camera_upload_then_view(self):
        composer = self.presenter.new_draft()
        self.assertEqual(self.nav.current, ROUTE_NEW)

        composer.update_fields(title="Beach", content="Sunny", location="Nice")
        att = await self.presenter.capture_media()
        self.assertIsNotNone(att)
        self.assertIsNone(await self.presenter.capture_media())

        await composer.wait_for_uploads()
        self.assertTrue(composer.draft.media_urls[0].startswith("/uploads/"))

        entry = await self.presenter.submit_draft()

        assert entry is not None
        self.assertEqual(composer.state, DraftState.EMPTY)
        self.assertIsNone(self.presenter.composer)
        self.assertEqual(self.nav.current, entry_route(entry.id))
        self.assertEqual(self.presenter.current.entry.title, "Beach")
        self.assertEqual(len(self.presenter.current.entry.media_urls), 1)

        listed = await self.presenter.load_entries()
        self.assertEqual([e.id for e in listed], [entry.id])

    async def test_validation_error_becomes_form_message(self):
        composer = self.presenter.new_draft()
        composer.update_fields(title="ok")
        composer.draft.content = None

        result = await self.presenter.submit_draft()

        self.assertIsNone(result)
        self.assertEqual(self.presenter.form_error, "Invalid entry data")
        self.assertTrue(self.presenter.form_errors)
        self.assertEqual(composer.state, DraftState.SUBMIT_FAILED)
        self.assertEqual(self.nav.current, ROUTE_NEW)

    async def test_open_missing_entry_returns_to_list(self):
        self.nav.navigate("/entries/999")

        view = await self.presenter.open_entry(999)

        self.assertIsNone(view)
        self.assertEqual(self.nav.current, ROUTE_LIST)
        self.assertEqual(self.nav.notices[-1].message, "This entry no longer exists")

    async def test_sensitive_entry_locks_and_relocks(self):
        self.settings_store.update(is_password_protection_enabled=True)
        entry_id = await self._create(sensitive=True)

        view = self.presenter.current
        self.assertTrue(view.locked)
        self.assertIsNone(view.content)
        self.assertEqual(view.visible_comments, [])

        with self.assertRaises(AuthChallengeError):
            await self.presenter.unlock("wrong")
        self.assertTrue(view.locked)

        await self.presenter.unlock("open-sesame")
        self.assertEqual(view.content, "Body")

        reopened = await self.presenter.open_entry(entry_id)
        self.assertTrue(reopened.locked)

        # 关闭保护后同一篇日记直接可见
        self.settings_store.update(is_password_protection_enabled=False)
        self.assertFalse((await self.presenter.open_entry(entry_id)).locked)

    async def test_unlock_network_failure_shows_retry_notice(self):
        self.settings_store.update(is_password_protection_enabled=True)
        await self._create(sensitive=True)
        failing = AsyncMock(side_effect=ApiError("Network error. Please try again."))

        with patch.object(self.api, "verify_password", failing):
            with self.assertRaises(ApiError):
                await self.presenter.unlock("open-sesame")

        self.assertTrue(self.presenter.current.locked)
        self.assertEqual(self.nav.notices[-1].message, RETRY_MESSAGE)

    async def test_toggle_sensitive_refetches(self):
        self.settings_store.update(is_password_protection_enabled=True)
        await self._create()
        self.assertFalse(self.presenter.current.locked)

        view = await self.presenter.toggle_sensitive()

        self.assertTrue(view.entry.sensitive)
        self.assertTrue(view.locked)

    async def test_comments_and_delete(self):
        entry_id = await self._create()

        comment = await self.presenter.add_comment("first!")
        self.assertIsNotNone(comment)
        self.assertEqual([c.content for c in self.presenter.current.comments], ["first!"])

        self.assertTrue(await self.presenter.delete_comment(comment.id))
        self.assertEqual(self.presenter.current.comments, [])
        self.assertFalse(await self.presenter.delete_comment(comment.id))

        self.assertTrue(await self.presenter.delete_entry(entry_id))
        self.assertEqual(self.nav.current, ROUTE_LIST)
        self.assertEqual(self.presenter.entries, [])
        self.assertIsNone(self.presenter.current)

    async def test_edit_existing_entry(self):
        entry_id = await self._create(tags=["a"])

        composer = await self.presenter.edit_draft(entry_id)
        self.assertEqual(self.nav.current, edit_route(entry_id))
        composer.update_fields(title="Edited")
        entry = await self.presenter.submit_draft()

        self.assertEqual(entry.id, entry_id)
        self.assertEqual(entry.title, "Edited")
        self.assertEqual(entry.tags, ["a"])

        listed = await self.presenter.load_entries()
        self.assertEqual(len(listed), 1)

    async def test_edit_of_deleted_entry_keeps_draft(self):
        entry_id = await self._create()
        composer = await self.presenter.edit_draft(entry_id)
        composer.update_fields(title="Unsaved edits")
        await self.api.delete_entry(entry_id)

        result = await self.presenter.submit_draft()

        self.assertIsNone(result)
        self.assertIs(self.presenter.composer, composer)
        self.assertEqual(composer.state, DraftState.SUBMIT_FAILED)
        self.assertEqual(composer.draft.title, "Unsaved edits")
        self.assertEqual(self.nav.current, edit_route(entry_id))
        self.assertEqual(self.nav.notices[-1].message, "This entry no longer exists")

        saved = await self.presenter.save_as_new()

        assert saved is not None
        self.assertNotEqual(saved.id, entry_id)
        self.assertEqual(saved.title, "Unsaved edits")
        self.assertEqual(self.nav.current, entry_route(saved.id))

    async def test_list_is_scoped_to_user_and_filters(self):
        await self._create(location="Paris")
        await self._create(location="Rome")
        await self.api.create_entry({"title": "x", "content": "y", "userEmail": "other@example.com"})

        everything = await self.presenter.load_entries()
        paris = await self.presenter.load_entries(location="paris")
        again = await self.presenter.load_entries()

        self.assertEqual(len(everything), 2)
        self.assertEqual([e.location for e in paris], ["Paris"])
        self.assertEqual(len(again), 1)


if __name__ == "__main__":
    unittest.main()
