from __future__ import annotations

import json
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator
from pydantic.alias_generators import to_camel

# 这些前缀是浏览器/客户端本地预览引用，不能作为附件落库
LOCAL_REFERENCE_PREFIXES = ("blob:", "local-preview:")


class CamelModel(BaseModel):
    """对外 JSON 统一使用 camelCase（mediaUrls / userEmail / createdAt）。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def normalize_email(value: str | None) -> str | None:
    text = (value or "").strip().lower()
    return text or None


def parse_str_list_json(value: str | None) -> list[str]:
    if not isinstance(value, str) or not value.strip():
        return []
    try:
        data = json.loads(value)
    except Exception:
        return []
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, str)]


def to_utc(dt: datetime | None) -> datetime | None:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class Feeling(CamelModel):
    """心情/活动标签：{emoji, label}"""

    emoji: StrictStr = Field(..., min_length=1, max_length=32)
    label: StrictStr = Field(..., min_length=1, max_length=64)

    @field_validator("emoji", "label")
    @classmethod
    def _strip(cls, v: str) -> str:
        text = v.strip()
        if not text:
            raise ValueError("must not be blank")
        return text


class EntryPayload(CamelModel):
    """创建/更新日记的请求体（与客户端 Draft 同形）。

    - title / content 必须是字符串（title 允许为空串）
    - mediaUrls 只接受服务端文件 URL，本地预览引用会被拒绝
    - location 为空白时视为 null
    """

    title: StrictStr
    content: StrictStr
    media_urls: list[StrictStr] = Field(default_factory=list)
    feeling: Feeling | None = None
    location: StrictStr | None = Field(None, max_length=255)
    sensitive: StrictBool = False
    tags: list[StrictStr] = Field(default_factory=list)
    user_email: StrictStr | None = Field(None, max_length=255)

    @field_validator("media_urls")
    @classmethod
    def _check_media_urls(cls, urls: list[str]) -> list[str]:
        out: list[str] = []
        for url in urls:
            ref = url.strip()
            if not ref:
                raise ValueError("media url must not be empty")
            if ref.lower().startswith(LOCAL_REFERENCE_PREFIXES):
                raise ValueError("media url must be an uploaded file url, not a local preview reference")
            out.append(ref)
        return out

    @field_validator("location")
    @classmethod
    def _blank_location_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("tags")
    @classmethod
    def _clean_tags(cls, tags: list[str]) -> list[str]:
        return [t.strip() for t in tags if t.strip()]

    @field_validator("user_email")
    @classmethod
    def _check_email(cls, v: str | None) -> str | None:
        email = normalize_email(v)
        if email is None:
            return None
        local, sep, domain = email.partition("@")
        if not sep or not local or not domain:
            raise ValueError("userEmail must be an email address")
        return email


class EntryResponse(CamelModel):
    """日记响应模型"""

    id: int
    title: str
    content: str
    media_urls: list[str] = Field(default_factory=list)
    feeling: Feeling | None = None
    location: str | None = None
    sensitive: bool = False
    tags: list[str] = Field(default_factory=list)
    user_email: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, entry) -> "EntryResponse":
        feeling = None
        if entry.feeling_emoji and entry.feeling_label:
            feeling = Feeling(emoji=entry.feeling_emoji, label=entry.feeling_label)
        return cls(
            id=entry.id,
            title=entry.title or "",
            content=entry.content or "",
            media_urls=parse_str_list_json(entry.media_urls_json),
            feeling=feeling,
            location=entry.location,
            sensitive=bool(entry.sensitive),
            tags=parse_str_list_json(entry.tags_json),
            user_email=(entry.user_email or "").lower(),
            created_at=to_utc(entry.created_at),
            updated_at=to_utc(entry.updated_at),
        )


class SensitiveToggleRequest(CamelModel):
    sensitive: StrictBool
