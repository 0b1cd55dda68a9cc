"""媒体上传服务

说明：
- 单次上传 = 单个文件，成功才返回 URL；失败时不会留下半截文件。
- 文件名由服务端生成（时间戳 + 随机数 + 原扩展名），不信任客户端文件名。
- 写盘放到线程池执行，避免阻塞事件循环。
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from pathlib import Path

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from ..config import settings

logger = logging.getLogger(__name__)

_SAFE_EXT_RE = re.compile(r"^\.[a-z0-9]{1,10}$")


class UploadRejected(Exception):
    """上传被拒绝（类型不支持 / 超过大小限制 / 没有文件）。message 可直接返回给前端。"""

    def __init__(self, message: str, *, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def _normalize_content_type(value: str | None) -> str:
    return (value or "").split(";", 1)[0].strip().lower()


def _safe_extension(filename: str | None) -> str:
    ext = Path(filename or "").suffix.lower()
    return ext if _SAFE_EXT_RE.match(ext) else ""


class UploadService:
    def __init__(
        self,
        *,
        upload_dir: Path,
        max_bytes: int,
        allowed_types: set[str],
        url_prefix: str = "/uploads",
        chunk_size: int = 1024 * 1024,
    ):
        self.upload_dir = upload_dir
        self.max_bytes = max_bytes
        self.allowed_types = allowed_types
        self.url_prefix = url_prefix.rstrip("/")
        self.chunk_size = chunk_size

    @classmethod
    def from_settings(cls) -> "UploadService":
        return cls(
            upload_dir=settings.resolve_upload_dir(),
            max_bytes=settings.upload_max_bytes,
            allowed_types=settings.upload_allowed_type_set,
            url_prefix=settings.upload_url_prefix,
            chunk_size=settings.upload_chunk_size,
        )

    @staticmethod
    def build_filename(original_name: str | None) -> str:
        unique_suffix = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}"
        return unique_suffix + _safe_extension(original_name)

    def _too_large_message(self) -> str:
        mb = self.max_bytes // (1024 * 1024)
        return f"File is too large. Maximum size is {mb}MB"

    async def save(self, file: UploadFile | None) -> str:
        """校验并落盘，返回可访问的 URL（形如 /uploads/<filename>）。"""
        if file is None or not (file.filename or "").strip():
            raise UploadRejected("No file uploaded")

        content_type = _normalize_content_type(file.content_type)
        if content_type not in self.allowed_types:
            raise UploadRejected("Invalid file type. Please upload an image, video, or audio file.")

        # 客户端声明的大小先检查一次（不可信，写盘时仍按实际字节数兜底）
        declared = getattr(file, "size", None)
        if isinstance(declared, int) and declared > self.max_bytes:
            raise UploadRejected(self._too_large_message())

        await run_in_threadpool(self.upload_dir.mkdir, parents=True, exist_ok=True)
        filename = self.build_filename(file.filename)
        target = self.upload_dir / filename

        written = 0
        fh = await run_in_threadpool(target.open, "wb")
        try:
            while True:
                chunk = await file.read(self.chunk_size)
                if not chunk:
                    break
                written += len(chunk)
                if written > self.max_bytes:
                    raise UploadRejected(self._too_large_message())
                await run_in_threadpool(fh.write, chunk)
        except BaseException:
            await run_in_threadpool(fh.close)
            await run_in_threadpool(target.unlink, missing_ok=True)
            raise
        await run_in_threadpool(fh.close)

        logger.info("[UPLOAD] stored %s type=%s bytes=%s", filename, content_type, written)
        return f"{self.url_prefix}/{filename}"
