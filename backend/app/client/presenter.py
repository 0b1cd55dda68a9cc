"""页面层：列表 / 详情 / 编辑 三个页面共用的一份逻辑。

只依赖 Platform（存储、相机、导航）和 HTTP 客户端，不关心运行在哪个端。
每次修改之后都重新从服务端拉取，不在本地维护缓存副本。
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from ..schemas import CommentResponse, EntryResponse
from .api import EntryApiClient
from .composer import Attachment, DraftComposer, PreviewRegistry, Uploader
from .errors import (
    ApiError,
    AuthChallengeError,
    DraftNotReadyError,
    DraftStateError,
    NotFoundError,
    UploadError,
    ValidationError,
)
from .gate import GateSession, SensitiveEntryGate
from .platform import Platform
from .settings import ClientSettings

logger = logging.getLogger(__name__)

ROUTE_LIST = "/"
ROUTE_NEW = "/new"

RETRY_MESSAGE = "Something went wrong. Please try again."


def entry_route(entry_id: int) -> str:
    return f"/entries/{entry_id}"


def edit_route(entry_id: int) -> str:
    return f"/entries/{entry_id}/edit"


@dataclass
class EntryView:
    entry: EntryResponse
    session: GateSession
    comments: list[CommentResponse] = field(default_factory=list)

    @property
    def locked(self) -> bool:
        return self.session.is_locked

    @property
    def content(self) -> str | None:
        return self.session.visible_content()

    @property
    def media_urls(self) -> list[str]:
        return self.session.visible_media()

    @property
    def visible_comments(self) -> list[CommentResponse]:
        return [] if self.locked else list(self.comments)


class JournalPresenter:
    def __init__(
        self,
        api: EntryApiClient,
        uploader: Uploader,
        platform: Platform,
        settings: ClientSettings,
        *,
        user_email: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api = api
        self.uploader = uploader
        self.platform = platform
        self.settings = settings
        self.user_email = user_email
        self.gate = SensitiveEntryGate(settings, api, user_email=user_email, clock=clock)
        self.previews = PreviewRegistry()

        self.entries: list[EntryResponse] = []
        self.filters: dict[str, Any] = {}
        self.current: EntryView | None = None
        self.composer: DraftComposer | None = None
        self.form_error: str | None = None
        self.form_errors: list[str] = []

    # ---- helpers ----

    def _notify(self, title: str, message: str = "", *, variant: str = "default") -> None:
        self.platform.navigation.notify(title, message, variant=variant)

    def _entry_missing(self, error: NotFoundError) -> None:
        self._notify("Not found", error.message, variant="destructive")
        self.current = None
        self.platform.navigation.navigate(ROUTE_LIST)

    async def _on_upload_error(self, attachment: Attachment, error: UploadError) -> None:
        self._notify("Upload failed", f"{attachment.filename or 'File'}: {error.message}", variant="destructive")

    def _make_composer(self) -> DraftComposer:
        if self.composer is not None:
            self.composer.discard()
        self.composer = DraftComposer(
            self.api,
            self.uploader,
            user_email=self.user_email,
            previews=self.previews,
            on_upload_error=self._on_upload_error,
        )
        self.form_error = None
        self.form_errors = []
        return self.composer

    def _require_composer(self, composer: DraftComposer | None) -> DraftComposer:
        composer = composer or self.composer
        if composer is None:
            raise DraftStateError("no draft in progress")
        return composer

    # ---- list ----

    async def load_entries(self, **filters: Any) -> list[EntryResponse]:
        """按筛选条件重新拉取列表；不传参数时沿用上一次的条件。"""
        if filters:
            self.filters = {k: v for k, v in filters.items() if v is not None and v != ""}
        params = dict(self.filters)
        if self.user_email:
            params.setdefault("email", self.user_email)

        try:
            entries = await self.api.list_entries(**params)
        except ApiError:
            self._notify("Error", "Failed to load entries. Please try again.", variant="destructive")
            raise
        self.entries = entries
        return entries

    # ---- detail ----

    async def _fetch_view(self, entry_id: int) -> EntryView:
        entry = await self.api.get_entry(entry_id)
        comments = await self.api.list_comments(entry_id)
        return EntryView(entry=entry, session=self.gate.open(entry), comments=comments)

    async def open_entry(self, entry_id: int) -> EntryView | None:
        """进入详情页；每次进入都是新的门禁会话。"""
        try:
            view = await self._fetch_view(entry_id)
        except NotFoundError as e:
            self._entry_missing(e)
            return None

        self.current = view
        self.platform.navigation.navigate(entry_route(entry_id))
        return view

    async def unlock(self, password: str) -> EntryView:
        view = self.current
        if view is None:
            raise DraftStateError("no entry is open")
        try:
            await view.session.verify(password)
        except AuthChallengeError as e:
            self._notify("Error", e.message, variant="destructive")
            raise
        except ApiError:
            self._notify("Error", RETRY_MESSAGE, variant="destructive")
            raise
        return view

    async def _reload_current(self) -> EntryView | None:
        if self.current is None:
            return None
        entry_id = self.current.entry.id
        try:
            self.current = await self._fetch_view(entry_id)
        except NotFoundError as e:
            self._entry_missing(e)
            return None
        return self.current

    async def _reload_comments(self) -> None:
        if self.current is None:
            return
        entry_id = self.current.entry.id
        try:
            self.current.comments = await self.api.list_comments(entry_id)
        except NotFoundError as e:
            self._entry_missing(e)

    async def delete_entry(self, entry_id: int) -> bool:
        try:
            await self.api.delete_entry(entry_id)
        except NotFoundError as e:
            # 已经在别处被删掉了，按删除成功处理
            self._notify("Not found", e.message, variant="destructive")
        except ApiError:
            self._notify("Error", "Failed to delete entry. Please try again.", variant="destructive")
            return False
        else:
            self._notify("Deleted", "Entry deleted")

        self.current = None
        self.platform.navigation.navigate(ROUTE_LIST)
        await self.load_entries()
        return True

    async def toggle_sensitive(self) -> EntryView | None:
        """切换当前日记的敏感标记；重新拉取后门禁按新状态重新判断。"""
        view = self.current
        if view is None:
            raise DraftStateError("no entry is open")
        try:
            await self.api.set_sensitive(view.entry.id, not view.entry.sensitive)
        except NotFoundError as e:
            self._entry_missing(e)
            return None
        except ApiError:
            self._notify("Error", RETRY_MESSAGE, variant="destructive")
            return view
        return await self._reload_current()

    async def add_comment(self, content: str) -> CommentResponse | None:
        view = self.current
        if view is None:
            raise DraftStateError("no entry is open")
        if view.locked:
            self._notify("Locked", "Unlock this entry to comment", variant="destructive")
            return None
        try:
            comment = await self.api.add_comment(view.entry.id, content)
        except NotFoundError as e:
            self._entry_missing(e)
            return None
        except ValidationError as e:
            self._notify("Error", e.errors[0] if e.errors else e.message, variant="destructive")
            return None
        except ApiError:
            self._notify("Error", RETRY_MESSAGE, variant="destructive")
            return None
        await self._reload_comments()
        return comment

    async def delete_comment(self, comment_id: int) -> bool:
        view = self.current
        if view is None:
            raise DraftStateError("no entry is open")
        deleted = True
        try:
            await self.api.delete_comment(view.entry.id, comment_id)
        except NotFoundError as e:
            self._notify("Not found", e.message, variant="destructive")
            deleted = False
        except ApiError:
            self._notify("Error", RETRY_MESSAGE, variant="destructive")
            return False
        await self._reload_comments()
        return deleted

    # ---- compose ----

    def new_draft(self) -> DraftComposer:
        composer = self._make_composer()
        composer.start_draft()
        self.platform.navigation.navigate(ROUTE_NEW)
        return composer

    async def edit_draft(self, entry_id: int) -> DraftComposer | None:
        try:
            entry = await self.api.get_entry(entry_id)
        except NotFoundError as e:
            self._entry_missing(e)
            return None

        composer = self._make_composer()
        composer.start_draft(entry)
        self.platform.navigation.navigate(edit_route(entry_id))
        return composer

    async def capture_media(self, composer: DraftComposer | None = None) -> Attachment | None:
        """相机拍摄后直接加入草稿并开始上传；用户取消返回 None。"""
        composer = self._require_composer(composer)
        file = await self.platform.camera.capture()
        if file is None:
            return None
        return composer.attach_media(file)

    async def submit_draft(self, composer: DraftComposer | None = None) -> EntryResponse | None:
        """提交草稿。成功后跳转到详情页；失败时草稿保持原样，返回 None。"""
        composer = self._require_composer(composer)
        self.form_error = None
        self.form_errors = []

        try:
            entry = await composer.submit()
        except DraftNotReadyError as e:
            self._notify("Please wait", e.message)
            return None
        except ValidationError as e:
            self.form_error = e.message
            self.form_errors = list(e.errors)
            return None
        except NotFoundError as e:
            # 编辑中的日记已在别处被删：草稿留在内存里，可以另存为新日记
            self._notify("Not found", e.message, variant="destructive")
            return None
        except ApiError:
            self._notify("Error", "Failed to save entry. Please try again.", variant="destructive")
            return None

        logger.info("[PRESENTER] saved entry %s", entry.id)
        composer.discard()
        if composer is self.composer:
            self.composer = None
        self._notify("Success", "Entry saved")

        view = await self.open_entry(entry.id)
        return view.entry if view is not None else None

    async def save_as_new(self, composer: DraftComposer | None = None) -> EntryResponse | None:
        """把编辑中的草稿另存为一篇新日记（原日记已被删除时使用）。"""
        composer = self._require_composer(composer)
        if composer.draft is None:
            raise DraftStateError("no draft in progress")
        composer.draft.entry_id = None
        composer.draft.created_at = None
        return await self.submit_draft(composer)
