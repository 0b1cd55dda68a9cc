"""草稿编辑状态机

Draft:       EMPTY -> EDITING -> SUBMITTING -> PERSISTED | SUBMIT_FAILED
Attachment:  SELECTED -> UPLOADING -> UPLOADED | UPLOAD_FAILED

规则：
- attach_media 立即占位（插入顺序即最终顺序），上传在后台 task 中进行；
  完成后原地把本地预览引用替换为服务端 URL。多个上传可同时进行，完成顺序不保证。
- 上传失败只影响该附件：从列表移除并通知调用方，草稿其余内容不变。
- 本地预览资源无论成功失败都会释放。
- 移除上传中的附件不会中断请求，只是丢弃结果；丢弃整个草稿同理。
- 有附件在上传时 submit() 直接拒绝（不发请求）；提交失败时草稿原样保留，便于重试。
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from ..schemas import EntryResponse, Feeling
from ..utils.errors import exception_summary
from .errors import AttachmentIndexError, DraftNotReadyError, DraftStateError, UploadError
from .platform import MediaFile

logger = logging.getLogger(__name__)

LOCAL_PREVIEW_SCHEME = "local-preview:"


class DraftState(str, Enum):
    EMPTY = "empty"
    EDITING = "editing"
    SUBMITTING = "submitting"
    PERSISTED = "persisted"
    SUBMIT_FAILED = "submit_failed"


class AttachmentStatus(str, Enum):
    SELECTED = "selected"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"


class Uploader(Protocol):
    async def upload(self, file: MediaFile, on_progress: Callable[[int], None] | None = None) -> str: ...


class EntryWriter(Protocol):
    async def create_entry(self, data: dict[str, Any]) -> EntryResponse: ...

    async def update_entry(self, entry_id: int, data: dict[str, Any]) -> EntryResponse: ...


class PreviewRegistry:
    """本地预览资源（相当于浏览器里的 object URL）：创建后必须释放。"""

    def __init__(self) -> None:
        self._items: dict[str, MediaFile] = {}

    def create(self, file: MediaFile) -> str:
        ref = f"{LOCAL_PREVIEW_SCHEME}{uuid.uuid4().hex}"
        self._items[ref] = file
        return ref

    def get(self, ref: str) -> MediaFile | None:
        return self._items.get(ref)

    def release(self, ref: str | None) -> None:
        if ref:
            self._items.pop(ref, None)

    def __len__(self) -> int:
        return len(self._items)


# 同一个对象只能在列表里出现一次；用对象身份而不是字段值判断，允许重复 URL
@dataclass(eq=False)
class Attachment:
    id: str
    status: AttachmentStatus
    local_preview: str | None = None
    server_reference: str | None = None
    filename: str | None = None
    progress: int = 0
    error: UploadError | None = None

    @property
    def reference(self) -> str | None:
        """当前用于展示的引用：上传完成后是服务端 URL，之前是本地预览。"""
        return self.server_reference or self.local_preview


@dataclass
class Draft:
    title: str = ""
    content: str = ""
    feeling: Feeling | None = None
    location: str | None = None
    sensitive: bool = False
    tags: list[str] = field(default_factory=list)
    user_email: str | None = None
    entry_id: int | None = None
    created_at: datetime | None = None
    attachments: list[Attachment] = field(default_factory=list)

    @property
    def media_urls(self) -> list[str]:
        return [a.reference for a in self.attachments if a.reference]

    @property
    def uploaded_urls(self) -> list[str]:
        return [
            a.server_reference
            for a in self.attachments
            if a.status is AttachmentStatus.UPLOADED and a.server_reference
        ]

    def to_payload(self) -> dict[str, Any]:
        """提交给 Entry API 的请求体；只包含已上传完成的附件。"""
        payload: dict[str, Any] = {
            "title": self.title,
            "content": self.content,
            "mediaUrls": self.uploaded_urls,
            "feeling": self.feeling.model_dump() if self.feeling else None,
            "location": self.location,
            "sensitive": self.sensitive,
            "tags": list(self.tags),
        }
        if self.user_email:
            payload["userEmail"] = self.user_email
        return payload


_EDITABLE_FIELDS = ("title", "content", "feeling", "location", "sensitive", "tags")

UploadErrorCallback = Callable[[Attachment, UploadError], Any]


class DraftComposer:
    def __init__(
        self,
        api: EntryWriter,
        uploader: Uploader,
        *,
        user_email: str | None = None,
        previews: PreviewRegistry | None = None,
        on_upload_error: UploadErrorCallback | None = None,
        on_progress: Callable[[Attachment], Any] | None = None,
    ):
        self.api = api
        self.uploader = uploader
        self.user_email = user_email
        self.previews = previews or PreviewRegistry()
        self.on_upload_error = on_upload_error
        self.on_progress = on_progress

        self.state = DraftState.EMPTY
        self.draft: Draft | None = None
        self.entry: EntryResponse | None = None
        self._tasks: set[asyncio.Task] = set()

    # ---- lifecycle ----

    def start_draft(self, existing: EntryResponse | None = None) -> Draft:
        """从空白模板或已有日记（编辑）初始化草稿；不会触发任何上传。"""
        if self.draft is not None:
            self.discard()

        if existing is None:
            draft = Draft(user_email=self.user_email)
        else:
            draft = Draft(
                title=existing.title or "",
                content=existing.content or "",
                feeling=existing.feeling,
                location=existing.location,
                sensitive=bool(existing.sensitive),
                tags=list(existing.tags),
                user_email=existing.user_email or self.user_email,
                entry_id=existing.id,
                created_at=existing.created_at,
                attachments=[
                    Attachment(
                        id=uuid.uuid4().hex,
                        status=AttachmentStatus.UPLOADED,
                        server_reference=url,
                        progress=100,
                    )
                    for url in existing.media_urls
                ],
            )

        self.draft = draft
        self.entry = None
        self.state = DraftState.EDITING
        return draft

    def discard(self) -> None:
        """放弃草稿（离开页面 / 取消 / 提交成功后）。在途上传的结果会被丢弃。"""
        if self.draft is not None:
            for att in self.draft.attachments:
                self.previews.release(att.local_preview)
        self.draft = None
        self.state = DraftState.EMPTY

    def _require_editable(self) -> Draft:
        if self.draft is None or self.state not in (DraftState.EDITING, DraftState.SUBMIT_FAILED):
            raise DraftStateError(f"draft is not editable in state {self.state.value}")
        return self.draft

    def update_fields(self, **changes: Any) -> Draft:
        draft = self._require_editable()
        for name, value in changes.items():
            if name not in _EDITABLE_FIELDS:
                raise AttributeError(f"unknown draft field: {name}")
            if name == "feeling" and isinstance(value, dict):
                value = Feeling.model_validate(value)
            if name in ("title", "content") and value is None:
                value = ""
            if name == "tags":
                value = list(value or [])
            setattr(draft, name, value)
        return draft

    # ---- attachments ----

    @property
    def uploading(self) -> bool:
        if self.draft is None:
            return False
        return any(a.status is AttachmentStatus.UPLOADING for a in self.draft.attachments)

    def _is_current(self, att: Attachment) -> bool:
        return self.draft is not None and any(a is att for a in self.draft.attachments)

    def attach_media(self, file: MediaFile) -> Attachment:
        """占位并开始后台上传；需要在事件循环中调用。"""
        draft = self._require_editable()

        att = Attachment(id=uuid.uuid4().hex, status=AttachmentStatus.SELECTED, filename=file.filename)
        att.local_preview = self.previews.create(file)
        draft.attachments.append(att)

        att.status = AttachmentStatus.UPLOADING
        task = asyncio.get_running_loop().create_task(self._run_upload(att, file))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return att

    def _report_progress(self, att: Attachment, percent: int) -> None:
        if percent <= att.progress:
            return
        att.progress = percent
        if self.on_progress is not None and self._is_current(att):
            self.on_progress(att)

    async def _run_upload(self, att: Attachment, file: MediaFile) -> None:
        try:
            url = await self.uploader.upload(file, lambda p: self._report_progress(att, p))
        except Exception as e:
            error = e if isinstance(e, UploadError) else UploadError(exception_summary(e))
            att.error = error
            att.status = AttachmentStatus.UPLOAD_FAILED
            if not self._is_current(att):
                logger.debug("[DRAFT] dropped failed upload for removed attachment %s", att.id)
                return
            self.draft.attachments.remove(att)
            logger.info("[DRAFT] upload failed for %s: %s", att.filename, error.message)
            await self._notify_upload_error(att, error)
            return
        finally:
            self.previews.release(att.local_preview)

        if not self._is_current(att):
            logger.debug("[DRAFT] dropped upload result for removed attachment %s", att.id)
            return

        att.server_reference = url
        att.local_preview = None
        att.status = AttachmentStatus.UPLOADED
        self._report_progress(att, 100)

    async def _notify_upload_error(self, att: Attachment, error: UploadError) -> None:
        if self.on_upload_error is None:
            return
        result = self.on_upload_error(att, error)
        if inspect.isawaitable(result):
            await result

    def remove_attachment(self, index: int) -> Attachment:
        """移除指定位置的附件，任何附件状态下都可以调用。"""
        draft = self._require_editable()
        if not isinstance(index, int) or index < 0 or index >= len(draft.attachments):
            raise AttachmentIndexError(f"no attachment at index {index}")

        att = draft.attachments.pop(index)
        if att.status is not AttachmentStatus.UPLOADING:
            self.previews.release(att.local_preview)
        return att

    async def wait_for_uploads(self) -> None:
        """等待当前所有在途上传结束（成功或失败）。"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---- submit ----

    async def submit(self) -> EntryResponse:
        if self.draft is None or self.state not in (DraftState.EDITING, DraftState.SUBMIT_FAILED):
            raise DraftStateError(f"cannot submit in state {self.state.value}")
        if self.uploading:
            raise DraftNotReadyError("Attachments are still uploading")

        draft = self.draft
        payload = draft.to_payload()
        self.state = DraftState.SUBMITTING
        try:
            if draft.entry_id is None:
                entry = await self.api.create_entry(payload)
            else:
                entry = await self.api.update_entry(draft.entry_id, payload)
        except Exception as e:
            self.state = DraftState.SUBMIT_FAILED
            logger.info("[DRAFT] submit failed: %s", exception_summary(e))
            raise

        draft.entry_id = entry.id
        draft.created_at = entry.created_at
        self.entry = entry
        self.state = DraftState.PERSISTED
        return entry

