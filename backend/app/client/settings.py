"""客户端设置（只存在本地，不与服务端同步）

设置对象通过构造参数注入到门禁和页面层，而不是全局单例；
SettingsStore.update 原地修改同一个对象，持有它的组件能看到最新值。
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from .platform import KeyValueStorage

logger = logging.getLogger(__name__)

SETTINGS_STORAGE_KEY = "diary-settings"

# 分钟；0 = 不自动锁定
AUTO_LOCK_CHOICES = (0, 1, 5, 15, 30, 60)


class ClientSettings(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    theme: Literal["light", "dark", "system"] = "system"
    text_size: Literal["normal", "large"] = "normal"
    is_compact_mode: bool = False
    is_password_protection_enabled: bool = False
    auto_lock_timeout: int = Field(0, ge=0)
    is_public_sharing_enabled: bool = False

    @field_validator("auto_lock_timeout")
    @classmethod
    def _check_auto_lock(cls, v: int) -> int:
        if v not in AUTO_LOCK_CHOICES:
            raise ValueError(f"autoLockTimeout must be one of {AUTO_LOCK_CHOICES}")
        return v

    @property
    def auto_lock_seconds(self) -> float:
        return float(self.auto_lock_timeout) * 60


class SettingsStore:
    def __init__(self, storage: KeyValueStorage, *, key: str = SETTINGS_STORAGE_KEY):
        self.storage = storage
        self.key = key
        self.current = self.load()

    def load(self) -> ClientSettings:
        raw = self.storage.get_item(self.key)
        if not raw:
            return ClientSettings()
        try:
            return ClientSettings.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("[SETTINGS] stored settings are invalid, falling back to defaults")
            return ClientSettings()

    def save(self) -> None:
        self.storage.set_item(self.key, self.current.model_dump_json(by_alias=True))

    def update(self, **changes) -> ClientSettings:
        """先整体校验，全部合法后再原地赋值并落盘。"""
        unknown = [name for name in changes if name not in ClientSettings.model_fields]
        if unknown:
            raise AttributeError(f"unknown setting: {', '.join(unknown)}")

        candidate = ClientSettings.model_validate({**self.current.model_dump(), **changes})
        for name in changes:
            setattr(self.current, name, getattr(candidate, name))
        self.save()
        return self.current
