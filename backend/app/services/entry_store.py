"""日记存储服务

说明：
- 只负责日记/评论的持久化与查询，不做请求体校验（校验见 validators.py）。
- 不存在的记录统一返回 None/False，由 API 层决定返回 404。
- 所有按邮箱的读写都做小写处理，保证大小写不敏感。
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import cast, delete, exists, func, literal, or_, select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Comment, DiaryEntry
from ..schemas import EntryPayload
from ..schemas.entry import normalize_email

logger = logging.getLogger(__name__)

_LIKE_ESCAPE = "\\"


def _escape_like_term(value: str) -> str:
    """转义 LIKE 模式中的特殊字符，避免用户输入意外触发通配或转义。"""
    if not value:
        return ""
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


def _contains_ci(column, term: str):
    pattern = f"%{_escape_like_term(term.lower())}%"
    return func.lower(func.coalesce(column, "")).like(pattern, escape=_LIKE_ESCAPE)


def _tag_contains_ci(dialect: str, term: str):
    """任一标签包含 term（逐个标签匹配，不是对整段 JSON 文本做子串匹配）。"""
    raw = func.coalesce(DiaryEntry.tags_json, "[]")
    if dialect.startswith("postgresql"):
        tags = func.jsonb_array_elements_text(cast(raw, JSONB)).table_valued("value").alias("t")
    else:
        tags = func.json_each(raw).table_valued("value").alias("t")
    return exists(select(literal(1)).select_from(tags).where(_contains_ci(tags.c.value, term)))


def _day_start_utc(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass
class EntryFilters:
    """列表筛选条件；字段为 None（或空白）表示不限制。"""

    email: str | None = None
    feeling: str | None = None
    location: str | None = None
    tag: str | None = None
    start_date: date | None = None
    end_date: date | None = None
    limit: int | None = None
    offset: int = 0

    def normalized(self) -> "EntryFilters":
        return EntryFilters(
            email=normalize_email(self.email),
            feeling=_blank_to_none(self.feeling),
            location=_blank_to_none(self.location),
            tag=_blank_to_none(self.tag),
            start_date=self.start_date,
            end_date=self.end_date,
            limit=self.limit,
            offset=max(0, int(self.offset or 0)),
        )


class EntryStore:
    """日记/评论存储：基于 AsyncSession 的薄封装。"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_entry(self, entry_id: int) -> DiaryEntry | None:
        result = await self.db.execute(select(DiaryEntry).where(DiaryEntry.id == entry_id))
        return result.scalar_one_or_none()

    async def list_entries(self, filters: EntryFilters | None = None) -> list[DiaryEntry]:
        f = (filters or EntryFilters()).normalized()

        query = select(DiaryEntry).order_by(DiaryEntry.created_at.desc(), DiaryEntry.id.desc())

        if f.email is not None:
            query = query.where(func.lower(DiaryEntry.user_email) == f.email)
        if f.feeling is not None:
            query = query.where(
                or_(
                    _contains_ci(DiaryEntry.feeling_label, f.feeling),
                    _contains_ci(DiaryEntry.feeling_emoji, f.feeling),
                )
            )
        if f.location is not None:
            query = query.where(_contains_ci(DiaryEntry.location, f.location))
        if f.tag is not None:
            dialect = self.db.get_bind().dialect.name
            query = query.where(_tag_contains_ci(dialect, f.tag))
        if f.start_date is not None:
            query = query.where(DiaryEntry.created_at >= _day_start_utc(f.start_date))
        if f.end_date is not None:
            # 结束日期按“次日 0 点之前”处理，这样当天 23:59 的记录也会被包含
            query = query.where(DiaryEntry.created_at < _day_start_utc(f.end_date + timedelta(days=1)))

        if f.limit is not None:
            query = query.limit(f.limit)
        if f.offset:
            query = query.offset(f.offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    def _apply_payload(self, entry: DiaryEntry, data: EntryPayload) -> None:
        entry.title = data.title
        entry.content = data.content
        entry.media_urls_json = json.dumps(list(data.media_urls), ensure_ascii=False)
        entry.tags_json = json.dumps(list(data.tags), ensure_ascii=False)
        if data.feeling is not None:
            entry.feeling_emoji = data.feeling.emoji
            entry.feeling_label = data.feeling.label
        else:
            entry.feeling_emoji = None
            entry.feeling_label = None
        entry.location = data.location
        entry.sensitive = bool(data.sensitive)

    async def create_entry(self, data: EntryPayload) -> DiaryEntry:
        owner = normalize_email(data.user_email)
        if owner is None:
            raise ValueError("user_email is required to create an entry")

        entry = DiaryEntry(user_email=owner)
        self._apply_payload(entry, data)
        self.db.add(entry)
        await self.db.flush()
        # created_at 由数据库生成，需要 refresh 才能拿到
        await self.db.refresh(entry)
        logger.info("[ENTRY] created id=%s owner=%s media=%s", entry.id, owner, len(data.media_urls))
        return entry

    async def update_entry(self, entry_id: int, data: EntryPayload) -> DiaryEntry | None:
        """整体替换可变字段；归属邮箱不随更新改变。"""
        entry = await self.get_entry(entry_id)
        if entry is None:
            return None

        self._apply_payload(entry, data)
        await self.db.flush()
        await self.db.refresh(entry)
        logger.info("[ENTRY] updated id=%s", entry.id)
        return entry

    async def set_sensitive(self, entry_id: int, sensitive: bool) -> DiaryEntry | None:
        entry = await self.get_entry(entry_id)
        if entry is None:
            return None

        entry.sensitive = bool(sensitive)
        await self.db.flush()
        await self.db.refresh(entry)
        return entry

    async def delete_entry(self, entry_id: int) -> bool:
        entry = await self.get_entry(entry_id)
        if entry is None:
            return False

        # 外键上已有 ON DELETE CASCADE；这里显式删除，保证未开启外键的连接也不会留下孤儿评论
        await self.db.execute(delete(Comment).where(Comment.entry_id == entry_id))
        await self.db.delete(entry)
        await self.db.flush()
        logger.info("[ENTRY] deleted id=%s", entry_id)
        return True

    async def list_comments(self, entry_id: int) -> list[Comment]:
        result = await self.db.execute(
            select(Comment)
            .where(Comment.entry_id == entry_id)
            .order_by(Comment.created_at.desc(), Comment.id.desc())
        )
        return list(result.scalars().all())

    async def add_comment(self, entry_id: int, content: str) -> Comment | None:
        entry = await self.get_entry(entry_id)
        if entry is None:
            return None

        comment = Comment(entry_id=entry_id, content=content)
        self.db.add(comment)
        await self.db.flush()
        await self.db.refresh(comment)
        return comment

    async def delete_comment(self, entry_id: int, comment_id: int) -> bool:
        result = await self.db.execute(
            select(Comment).where(Comment.id == comment_id, Comment.entry_id == entry_id)
        )
        comment = result.scalar_one_or_none()
        if comment is None:
            return False

        await self.db.delete(comment)
        await self.db.flush()
        return True
