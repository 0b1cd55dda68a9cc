"""媒体上传客户端

约定：
- upload() 要么返回可用的文件 URL，要么抛 UploadError；不存在“部分成功”。
- 进度按请求体实际发送的字节数计算，单调递增；100 只在成功后上报。
- 不重试、不分片、不去重。
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx

from ..utils.errors import exception_summary
from .errors import UploadError
from .platform import MediaFile

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class _ProgressReporter:
    def __init__(self, total: int, callback: ProgressCallback | None):
        self.total = total
        self.callback = callback
        self.last = -1

    def report(self, percent: int) -> None:
        percent = max(0, min(100, int(percent)))
        if percent <= self.last:
            return
        self.last = percent
        if self.callback is not None:
            self.callback(percent)

    def sent(self, sent_bytes: int) -> None:
        if self.total <= 0:
            return
        # 发送完字节不等于服务端已经落盘，在途最多报到 99
        self.report(min(99, sent_bytes * 100 // self.total))


class _ProgressStream(httpx.AsyncByteStream):
    """包一层请求体流，边发送边统计字节数。"""

    def __init__(self, inner: httpx.AsyncByteStream, reporter: _ProgressReporter):
        self._inner = inner
        self._reporter = reporter

    async def __aiter__(self) -> AsyncIterator[bytes]:
        sent = 0
        async for chunk in self._inner:
            sent += len(chunk)
            self._reporter.sent(sent)
            yield chunk

    async def aclose(self) -> None:
        await self._inner.aclose()


def _error_message(resp: httpx.Response) -> str:
    try:
        data: Any = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("message")
        if isinstance(detail, str) and detail.strip():
            return detail
    return "Failed to upload file"


class UploadClient:
    def __init__(self, client: httpx.AsyncClient, *, api_prefix: str = "/api", field_name: str = "file"):
        self.client = client
        prefix = api_prefix.strip("/")
        self.url = f"/{prefix}/upload" if prefix else "/upload"
        self.field_name = field_name

    async def upload(self, file: MediaFile, on_progress: ProgressCallback | None = None) -> str:
        request = self.client.build_request(
            "POST",
            self.url,
            files={self.field_name: (file.filename, file.data, file.content_type)},
        )
        total = int(request.headers.get("content-length") or 0)
        reporter = _ProgressReporter(total, on_progress)
        reporter.report(0)
        request.stream = _ProgressStream(request.stream, reporter)

        try:
            resp = await self.client.send(request)
        except httpx.RequestError as e:
            logger.warning("[UPLOAD] %s failed: %s", file.filename, exception_summary(e))
            raise UploadError("An error occurred during upload. Please try again.") from e

        if not resp.is_success:
            message = _error_message(resp)
            logger.info("[UPLOAD] %s rejected (HTTP %s): %s", file.filename, resp.status_code, message)
            raise UploadError(message)

        try:
            data: Any = resp.json()
        except ValueError as e:
            raise UploadError("Upload response was not JSON") from e
        url = data.get("url") if isinstance(data, dict) else None
        if not isinstance(url, str) or not url.strip():
            raise UploadError("Upload response did not include a file url")

        reporter.report(100)
        return url
