from .entry import DiaryEntry
from .comment import Comment
from .protection_password import ProtectionPassword

__all__ = [
    "DiaryEntry",
    "Comment",
    "ProtectionPassword",
]
