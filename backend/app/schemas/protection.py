from __future__ import annotations

from pydantic import Field

from .entry import CamelModel


class VerifyPasswordRequest(CamelModel):
    password: str = Field(..., description="用户输入的保护密码")
    user_email: str | None = Field(None, description="查看者邮箱；为空时只校验全局密码")


class ProtectionPasswordSetRequest(CamelModel):
    user_email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., description="新的保护密码（长度下限见配置）")
    current_password: str | None = Field(None, description="已设置过密码时必须提供")
