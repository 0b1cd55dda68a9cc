"""日志 / 对外响应里使用的异常文本工具。"""

from __future__ import annotations

import re
from typing import Any


_CONTROL_RE = re.compile(r"[\r\n\t]+")


def sanitize_text(text: str, *, max_len: int, escape_controls: bool = False) -> str:
    """压成单行并截断。

    - escape_controls=False：控制字符替换成空格（异常摘要用）
    - escape_controls=True：转义成 \\n 等字面量（logfmt 字段用，保留原始信息）
    """
    if max_len <= 0:
        return ""
    if escape_controls:
        cleaned = text.replace("\r", "\\r").replace("\n", "\\n").replace("\t", "\\t")
    else:
        cleaned = _CONTROL_RE.sub(" ", text).strip()
    if len(cleaned) > max_len:
        return f"{cleaned[:max_len]}…"
    return cleaned


def exception_summary(exc: BaseException, *, max_len: int = 200) -> str:
    """异常类型 + 截断后的消息；带 message 属性的业务异常优先用 message。"""
    name = type(exc).__name__
    raw = getattr(exc, "message", None)
    if not isinstance(raw, str):
        raw = str(exc)
    msg = sanitize_text(raw, max_len=max_len)
    return f"{name}: {msg}" if msg else name


def safe_str(value: Any, *, max_len: int = 200) -> str:
    return sanitize_text(str(value), max_len=max_len)
