"""请求体校验器

每个实体一个校验器对象，`validate(raw)` 返回带标签的 ValidationResult：
- ok=True 时 value 为解析后的 pydantic 模型
- ok=False 时 errors 为可直接展示的错误列表

路由层根据结果决定是否返回 400，不依赖异常做流程控制。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .schemas import CommentCreateRequest, EntryPayload, SensitiveToggleRequest

T = TypeVar("T", bound=BaseModel)


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    ok: bool
    value: T | None = None
    errors: list[str] = field(default_factory=list)

    @classmethod
    def success(cls, value: T) -> "ValidationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, *errors: str) -> "ValidationResult[T]":
        return cls(ok=False, errors=[e for e in errors if e] or ["invalid payload"])


def _format_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    out: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        msg = str(err.get("msg") or "invalid value")
        out.append(f"{loc}: {msg}" if loc else msg)
    return out


class ModelValidator(Generic[T]):
    """把 pydantic 模型包装成“返回结果”的校验器。"""

    model: type[T]

    def validate(self, raw: Any) -> ValidationResult[T]:
        if not isinstance(raw, dict):
            return ValidationResult.failure("body must be a JSON object")
        try:
            value = self.model.model_validate(raw)
        except PydanticValidationError as e:
            return ValidationResult.failure(*_format_pydantic_errors(e))

        problems = self.check(value)
        if problems:
            return ValidationResult.failure(*problems)
        return ValidationResult.success(value)

    def check(self, value: T) -> list[str]:
        """模型解析之后的业务规则（子类覆盖）。"""
        return []


class EntryValidator(ModelValidator[EntryPayload]):
    model = EntryPayload

    def __init__(self, *, require_owner: bool):
        self.require_owner = require_owner

    def check(self, value: EntryPayload) -> list[str]:
        if self.require_owner and not value.user_email:
            return ["userEmail: field required"]
        return []


class CommentValidator(ModelValidator[CommentCreateRequest]):
    model = CommentCreateRequest


class SensitiveToggleValidator(ModelValidator[SensitiveToggleRequest]):
    model = SensitiveToggleRequest


entry_create_validator = EntryValidator(require_owner=True)
entry_update_validator = EntryValidator(require_owner=False)
comment_validator = CommentValidator()
sensitive_toggle_validator = SensitiveToggleValidator()
