"""客户端侧的日记生命周期：草稿编辑、附件上传、敏感日记门禁与页面层。

服务端 API 见 app.api；这里只通过 HTTP（httpx）与服务端交互。
"""

from .api import EntryApiClient
from .composer import Attachment, AttachmentStatus, Draft, DraftComposer, DraftState
from .errors import (
    ApiError,
    AttachmentIndexError,
    AuthChallengeError,
    DraftNotReadyError,
    DraftStateError,
    JournalError,
    NotFoundError,
    UploadError,
    ValidationError,
)
from .gate import GateSession, GateState, SensitiveEntryGate
from .platform import MediaFile, Platform
from .presenter import EntryView, JournalPresenter
from .settings import ClientSettings, SettingsStore
from .uploads import UploadClient

__all__ = [
    "EntryApiClient",
    "Attachment",
    "AttachmentStatus",
    "Draft",
    "DraftComposer",
    "DraftState",
    "ApiError",
    "AttachmentIndexError",
    "AuthChallengeError",
    "DraftNotReadyError",
    "DraftStateError",
    "JournalError",
    "NotFoundError",
    "UploadError",
    "ValidationError",
    "GateSession",
    "GateState",
    "SensitiveEntryGate",
    "MediaFile",
    "Platform",
    "EntryView",
    "JournalPresenter",
    "ClientSettings",
    "SettingsStore",
    "UploadClient",
]
