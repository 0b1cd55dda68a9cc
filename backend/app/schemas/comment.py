from __future__ import annotations

from datetime import datetime

from pydantic import StrictStr, field_validator

from .entry import CamelModel, to_utc


class CommentCreateRequest(CamelModel):
    content: StrictStr

    @field_validator("content")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("content must not be empty")
        return v


class CommentResponse(CamelModel):
    """评论响应模型"""

    id: int
    entry_id: int
    content: str
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, comment) -> "CommentResponse":
        return cls(
            id=comment.id,
            entry_id=comment.entry_id,
            content=comment.content or "",
            created_at=to_utc(comment.created_at),
        )
