"""Sensitive-entry password API"""

from __future__ import annotations

import threading
import time

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..schemas import ProtectionPasswordSetRequest, VerifyPasswordRequest
from ..services import ProtectionPasswordError, ProtectionService

router = APIRouter(tags=["protection"])

_RATE_LOCK = threading.Lock()
_RATE_ATTEMPTS: dict[str, list[float]] = {}


def _get_client_ip(request: Request) -> str | None:
    xff = request.headers.get("x-forwarded-for")
    if xff:
        first = xff.split(",")[0].strip()
        if first:
            return first

    xrip = request.headers.get("x-real-ip")
    if xrip:
        return xrip.strip() or None

    if request.client:
        return request.client.host
    return None


def _enforce_rate_limit(ip: str | None) -> None:
    """max_attempts=0（默认）时不限流。"""
    window = int(settings.verify_rate_limit_window_seconds or 0)
    max_attempts = int(settings.verify_rate_limit_max_attempts or 0)
    if not ip or window <= 0 or max_attempts <= 0:
        return

    cutoff = time.time() - window
    with _RATE_LOCK:
        # 顺带清掉窗口外的记录，IP 没有剩余记录就整个删掉
        for key in list(_RATE_ATTEMPTS):
            kept = [ts for ts in _RATE_ATTEMPTS[key] if ts >= cutoff]
            if kept:
                _RATE_ATTEMPTS[key] = kept
            else:
                del _RATE_ATTEMPTS[key]
        if len(_RATE_ATTEMPTS.get(ip, [])) >= max_attempts:
            raise HTTPException(status_code=429, detail="TOO_MANY_ATTEMPTS")


def _record_failed_attempt(ip: str | None) -> None:
    if not ip or int(settings.verify_rate_limit_max_attempts or 0) <= 0:
        return
    with _RATE_LOCK:
        _RATE_ATTEMPTS.setdefault(ip, []).append(time.time())


@router.post("/verify-password")
async def verify_password(
    request: Request,
    body: VerifyPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    """校验敏感日记保护密码：成功 200，失败 401（不说明失败原因）"""
    ip = _get_client_ip(request)
    _enforce_rate_limit(ip)

    ok = await ProtectionService(db).verify(body.password or "", body.user_email)
    if not ok:
        _record_failed_attempt(ip)
        raise HTTPException(status_code=401, detail="INVALID_PASSWORD")
    return {"ok": True}


@router.put("/protection-password", status_code=204)
async def set_protection_password(
    body: ProtectionPasswordSetRequest,
    db: AsyncSession = Depends(get_db),
) -> Response:
    """设置/修改保护密码；已设置过时需要提供 currentPassword"""
    try:
        await ProtectionService(db).set_password(body.user_email, body.password, body.current_password)
    except ProtectionPasswordError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
    await db.commit()
    return Response(status_code=204)


@router.get("/protection-password/status")
async def protection_password_status(
    email: str | None = None,
    db: AsyncSession = Depends(get_db),
) -> dict[str, bool]:
    """是否已配置可用的保护密码（用于设置页决定显示“设置”还是“修改”）"""
    return {"configured": await ProtectionService(db).has_password(email)}
