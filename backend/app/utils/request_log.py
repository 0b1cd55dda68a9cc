"""请求日志：每个 HTTP 请求输出一行 logfmt 到 `app.access` logger。

落盘/轮转交给部署侧的 logging 配置（uvicorn --log-config 等）处理。
"""

from __future__ import annotations

import logging
import time
from typing import Any

from starlette.requests import Request

from ..config import settings, split_csv
from .errors import sanitize_text

access_logger = logging.getLogger("app.access")


def _logfmt_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = sanitize_text(str(value), max_len=800, escape_controls=True)
    # 包含空白或特殊字符时加引号
    if not text or any(ch.isspace() for ch in text) or any(ch in text for ch in ['"', "=", "\\"]):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f"\"{escaped}\""
    return text


def to_logfmt(fields: list[tuple[str, Any]]) -> str:
    parts: list[str] = []
    for key, value in fields:
        rendered = _logfmt_value(value)
        if rendered == "":
            continue
        parts.append(f"{key}={rendered}")
    return " ".join(parts)


def _should_ignore(path: str) -> bool:
    return path in set(split_csv(settings.access_log_ignore_paths))


def log_http_request(
    request: Request,
    *,
    status_code: int,
    duration_ms: int,
    error: str | None = None,
    request_id: str | None = None,
) -> None:
    if not settings.access_log_enabled:
        return
    path = request.url.path or ""
    if _should_ignore(path):
        return

    line = to_logfmt(
        [
            ("method", request.method),
            ("path", path),
            ("status", status_code),
            ("dur_ms", duration_ms),
            ("rid", request_id),
            ("error", error),
        ]
    )
    level = logging.WARNING if status_code >= 500 else logging.INFO
    access_logger.log(level, line)


class RequestTimer:
    """简单计时器：用于计算请求耗时（ms）。"""

    def __init__(self) -> None:
        self._start = time.perf_counter()

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._start) * 1000)
