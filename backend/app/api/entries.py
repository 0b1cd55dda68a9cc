"""Diary entry & comment API"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..schemas import CommentResponse, EntryResponse
from ..services import EntryFilters, EntryStore
from ..validators import (
    ValidationResult,
    comment_validator,
    entry_create_validator,
    entry_update_validator,
    sensitive_toggle_validator,
)

router = APIRouter(prefix="/entries", tags=["entries"])
logger = logging.getLogger(__name__)


def _raise_invalid(result: ValidationResult, message: str) -> None:
    # 前端只展示 message；errors 便于排障
    logger.info("[ENTRY] rejected payload: %s", "; ".join(result.errors))
    raise HTTPException(status_code=400, detail={"message": message, "errors": result.errors})


def _entry_not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Entry not found")


def _parse_date_yyyy_mm_dd(value: str | None, field_name: str) -> date | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"{field_name} must be YYYY-MM-DD") from e


@router.get("", response_model=list[EntryResponse])
async def list_entries(
    email: str | None = Query(None, description="按归属邮箱过滤（大小写不敏感）"),
    feeling: str | None = Query(None, description="心情/活动标签（子串匹配）"),
    location: str | None = Query(None, description="地点（子串匹配）"),
    tag: str | None = Query(None, description="标签（子串匹配）"),
    start_date: str | None = Query(None, alias="startDate", description="起始日期（YYYY-MM-DD，含）"),
    end_date: str | None = Query(None, alias="endDate", description="结束日期（YYYY-MM-DD，含当天）"),
    limit: int | None = Query(None, ge=1, le=settings.entries_max_limit, description="分页大小"),
    offset: int = Query(0, ge=0, description="分页 offset"),
    db: AsyncSession = Depends(get_db),
):
    """获取日记列表（按创建时间倒序，支持筛选）"""
    sd = _parse_date_yyyy_mm_dd(start_date, "startDate")
    ed = _parse_date_yyyy_mm_dd(end_date, "endDate")
    if sd and ed and ed < sd:
        raise HTTPException(status_code=400, detail="endDate must be greater than or equal to startDate")

    filters = EntryFilters(
        email=email,
        feeling=feeling,
        location=location,
        tag=tag,
        start_date=sd,
        end_date=ed,
        limit=limit or settings.entries_default_limit,
        offset=offset,
    )
    entries = await EntryStore(db).list_entries(filters)
    return [EntryResponse.from_model(e) for e in entries]


@router.get("/{entry_id}", response_model=EntryResponse)
async def get_entry(entry_id: int, db: AsyncSession = Depends(get_db)):
    """获取单篇日记"""
    entry = await EntryStore(db).get_entry(entry_id)
    if entry is None:
        raise _entry_not_found()
    return EntryResponse.from_model(entry)


@router.post("", response_model=EntryResponse, status_code=201)
async def create_entry(payload: Any = Body(None), db: AsyncSession = Depends(get_db)):
    """创建日记"""
    result = entry_create_validator.validate(payload)
    if not result.ok:
        _raise_invalid(result, "Invalid entry data")

    entry = await EntryStore(db).create_entry(result.value)
    await db.commit()
    return EntryResponse.from_model(entry)


@router.put("/{entry_id}", response_model=EntryResponse)
async def update_entry(entry_id: int, payload: Any = Body(None), db: AsyncSession = Depends(get_db)):
    """更新日记（整体替换标题/正文/附件/心情/地点/敏感标记/标签）"""
    result = entry_update_validator.validate(payload)
    if not result.ok:
        _raise_invalid(result, "Invalid entry data")

    entry = await EntryStore(db).update_entry(entry_id, result.value)
    if entry is None:
        raise _entry_not_found()
    await db.commit()
    return EntryResponse.from_model(entry)


@router.patch("/{entry_id}/sensitive", response_model=EntryResponse)
async def set_entry_sensitive(entry_id: int, payload: Any = Body(None), db: AsyncSession = Depends(get_db)):
    """单独切换敏感标记（详情页的开关）"""
    result = sensitive_toggle_validator.validate(payload)
    if not result.ok:
        _raise_invalid(result, "Invalid sensitive flag")

    entry = await EntryStore(db).set_sensitive(entry_id, result.value.sensitive)
    if entry is None:
        raise _entry_not_found()
    await db.commit()
    return EntryResponse.from_model(entry)


@router.delete("/{entry_id}", status_code=204)
async def delete_entry(entry_id: int, db: AsyncSession = Depends(get_db)) -> Response:
    """删除日记（评论级联删除）"""
    deleted = await EntryStore(db).delete_entry(entry_id)
    if not deleted:
        raise _entry_not_found()
    await db.commit()
    return Response(status_code=204)


@router.get("/{entry_id}/comments", response_model=list[CommentResponse])
async def list_comments(entry_id: int, db: AsyncSession = Depends(get_db)):
    """获取某篇日记的评论（新的在前）"""
    store = EntryStore(db)
    if await store.get_entry(entry_id) is None:
        raise _entry_not_found()
    comments = await store.list_comments(entry_id)
    return [CommentResponse.from_model(c) for c in comments]


@router.post("/{entry_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment(entry_id: int, payload: Any = Body(None), db: AsyncSession = Depends(get_db)):
    """添加评论"""
    result = comment_validator.validate(payload)
    if not result.ok:
        _raise_invalid(result, "Invalid comment data")

    comment = await EntryStore(db).add_comment(entry_id, result.value.content)
    if comment is None:
        raise _entry_not_found()
    await db.commit()
    return CommentResponse.from_model(comment)


@router.delete("/{entry_id}/comments/{comment_id}", status_code=204)
async def delete_comment(entry_id: int, comment_id: int, db: AsyncSession = Depends(get_db)) -> Response:
    """删除评论"""
    deleted = await EntryStore(db).delete_comment(entry_id, comment_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Comment not found")
    await db.commit()
    return Response(status_code=204)
