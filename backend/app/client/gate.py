"""敏感日记门禁

- 设置里关闭了密码保护：直接放行（不管日记是否标记 sensitive）。
- 打开了密码保护且日记 sensitive=True：每次进入日记都是新的会话，初始为 LOCKED，
  verify() 成功后仅本次会话 UNLOCKED；重新进入会再次锁定。
- autoLockTimeout > 0 时，解锁超过该分钟数后自动回到 LOCKED。
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from ..schemas import EntryResponse
from .errors import AuthChallengeError
from .settings import ClientSettings

logger = logging.getLogger(__name__)


class GateState(str, Enum):
    BYPASSED = "bypassed"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class PasswordVerifier(Protocol):
    async def verify_password(self, password: str, user_email: str | None = None) -> None:
        """成功返回 None，密码错误抛 AuthChallengeError。"""
        ...


class GateSession:
    """一次“查看某篇日记”的门禁状态。"""

    def __init__(
        self,
        entry: EntryResponse,
        *,
        locked: bool,
        verifier: PasswordVerifier,
        user_email: str | None,
        auto_lock_seconds: float,
        clock: Callable[[], float],
    ):
        self.entry = entry
        self._verifier = verifier
        self._user_email = user_email
        self._auto_lock_seconds = auto_lock_seconds
        self._clock = clock
        self._state = GateState.LOCKED if locked else GateState.BYPASSED
        self._unlocked_at: float | None = None

    @property
    def state(self) -> GateState:
        if self._state is GateState.UNLOCKED and self._auto_lock_expired():
            logger.info("[GATE] entry %s re-locked after inactivity", self.entry.id)
            self.lock()
        return self._state

    @property
    def is_locked(self) -> bool:
        return self.state is GateState.LOCKED

    def _auto_lock_expired(self) -> bool:
        if self._auto_lock_seconds <= 0 or self._unlocked_at is None:
            return False
        return (self._clock() - self._unlocked_at) >= self._auto_lock_seconds

    def lock(self) -> None:
        if self._state is GateState.BYPASSED:
            return
        self._state = GateState.LOCKED
        self._unlocked_at = None

    async def verify(self, password: str) -> None:
        """校验密码；失败时保持 LOCKED 并抛出 AuthChallengeError（统一提示，不给细节）。"""
        if self.state is not GateState.LOCKED:
            return
        try:
            await self._verifier.verify_password(password, self._user_email)
        except AuthChallengeError:
            raise AuthChallengeError() from None

        self._state = GateState.UNLOCKED
        self._unlocked_at = self._clock()

    def visible_content(self) -> str | None:
        """锁定时不返回正文。"""
        if self.is_locked:
            return None
        return self.entry.content

    def visible_media(self) -> list[str]:
        if self.is_locked:
            return []
        return list(self.entry.media_urls)


class SensitiveEntryGate:
    def __init__(
        self,
        settings: ClientSettings,
        verifier: PasswordVerifier,
        *,
        user_email: str | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.verifier = verifier
        self.user_email = user_email
        self.clock = clock

    def requires_challenge(self, entry: EntryResponse) -> bool:
        return bool(self.settings.is_password_protection_enabled and entry.sensitive)

    def open(self, entry: EntryResponse) -> GateSession:
        return GateSession(
            entry,
            locked=self.requires_challenge(entry),
            verifier=self.verifier,
            user_email=self.user_email,
            auto_lock_seconds=self.settings.auto_lock_seconds,
            clock=self.clock,
        )
