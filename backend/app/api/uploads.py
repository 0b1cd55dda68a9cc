"""Media upload API"""

from __future__ import annotations

import logging

from fastapi import APIRouter, File, HTTPException, UploadFile

from ..schemas import UploadResponse
from ..services import UploadRejected, UploadService
from ..utils.errors import exception_summary

router = APIRouter(tags=["uploads"])
logger = logging.getLogger(__name__)


def get_upload_service() -> UploadService:
    return UploadService.from_settings()


@router.post("/upload", response_model=UploadResponse)
async def upload_media(file: UploadFile | None = File(None)):
    """上传单个媒体文件（multipart 字段名 file），返回可写入日记的 URL"""
    service = get_upload_service()
    try:
        url = await service.save(file)
    except UploadRejected as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
    except OSError as e:
        logger.exception("[UPLOAD] failed to store file: %s", exception_summary(e))
        raise HTTPException(status_code=500, detail="Server error while uploading file") from e
    finally:
        if file is not None:
            await file.close()
    return UploadResponse(url=url)
