from .comment import CommentCreateRequest, CommentResponse
from .entry import (
    CamelModel,
    EntryPayload,
    EntryResponse,
    Feeling,
    SensitiveToggleRequest,
)
from .protection import ProtectionPasswordSetRequest, VerifyPasswordRequest
from .upload import UploadResponse

__all__ = [
    "CamelModel",
    "CommentCreateRequest",
    "CommentResponse",
    "EntryPayload",
    "EntryResponse",
    "Feeling",
    "SensitiveToggleRequest",
    "ProtectionPasswordSetRequest",
    "VerifyPasswordRequest",
    "UploadResponse",
]
