"""敏感日记保护密码服务

说明：
- 校验只给出“通过/不通过”，不暴露失败原因（长度不对、字符不对都一样）。
- 优先使用用户自己设置的密码；用户没设置时回退到 .env 里的全局密码。
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import ProtectionPassword
from ..schemas.entry import normalize_email
from ..utils.passwords import hash_password, verify_password_hash, verify_plaintext

logger = logging.getLogger(__name__)


class ProtectionPasswordError(Exception):
    """设置保护密码失败（密码过短 / 旧密码不正确）。"""

    def __init__(self, message: str, *, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ProtectionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_record(self, email: str | None) -> ProtectionPassword | None:
        owner = normalize_email(email)
        if owner is None:
            return None
        result = await self.db.execute(
            select(ProtectionPassword).where(func.lower(ProtectionPassword.user_email) == owner)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _verify_global(password: str) -> bool:
        if settings.protection_password_hash:
            return verify_password_hash(password, settings.protection_password_hash)
        return verify_plaintext(password, settings.protection_password)

    async def has_password(self, email: str | None) -> bool:
        record = await self._get_record(email)
        if record is not None:
            return True
        return bool(settings.protection_password_hash or settings.protection_password)

    async def verify(self, password: str, email: str | None = None) -> bool:
        if not password:
            return False

        record = await self._get_record(email)
        if record is not None:
            return verify_password_hash(password, record.password_hash)
        return self._verify_global(password)

    async def set_password(self, email: str, password: str, current_password: str | None = None) -> None:
        owner = normalize_email(email)
        if owner is None:
            raise ProtectionPasswordError("userEmail is required")

        min_len = int(settings.protection_password_min_length)
        if len(password or "") < min_len:
            raise ProtectionPasswordError(f"Password must be at least {min_len} characters long.")

        record = await self._get_record(owner)
        if record is not None:
            if not verify_password_hash(current_password or "", record.password_hash):
                raise ProtectionPasswordError("INVALID_PASSWORD", status_code=401)
            record.password_hash = hash_password(password)
        else:
            record = ProtectionPassword(user_email=owner, password_hash=hash_password(password))
            self.db.add(record)

        await self.db.flush()
        logger.info("[PROTECTION] password set for %s", owner)
