"""FastAPI application entry point"""
import logging
import uuid
from pathlib import Path
import tomllib

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import (
    http_exception_handler as fastapi_http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from .config import settings, split_csv
from .database import engine, init_db
from .api import entries_router, protection_router, uploads_router
from .utils.errors import exception_summary
from .utils.request_log import RequestTimer, log_http_request

logger = logging.getLogger(__name__)

_DEFAULT_VERSION = "0.3.1"

# 默认降低 SQLAlchemy 的日志噪声；排查 SQL 时再用 SQL_ECHO=true 打开
if not settings.sql_echo:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)


def _read_app_version() -> str:
    """从仓库根目录的 pyproject.toml 读取版本，避免多处硬编码。"""
    try:
        repo_root = Path(__file__).resolve().parents[2]
        pyproject = repo_root / "pyproject.toml"
        if not pyproject.exists():
            return _DEFAULT_VERSION
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        version = ((data.get("project") or {}).get("version") or "").strip()
        return version or _DEFAULT_VERSION
    except (OSError, tomllib.TOMLDecodeError):
        return _DEFAULT_VERSION


APP_VERSION = _read_app_version()

app = FastAPI(
    title="Dayleaf API",
    description="Personal journal: entries, comments, media uploads and sensitive-entry protection",
    version=APP_VERSION,
)

# CORS middleware
cors_origins = split_csv(settings.cors_allow_origins)
if not cors_origins or cors_origins == ["*"]:
    cors_origins = ["*"]
    cors_allow_credentials = False
else:
    cors_allow_credentials = bool(settings.cors_allow_credentials)

cors_methods = split_csv(settings.cors_allow_methods)
if not cors_methods or cors_methods == ["*"]:
    cors_methods = ["*"]

cors_headers = split_csv(settings.cors_allow_headers)
if not cors_headers or cors_headers == ["*"]:
    cors_headers = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=cors_methods,
    allow_headers=cors_headers,
)


@app.middleware("http")
async def access_log_middleware(request: Request, call_next):
    timer = RequestTimer()
    status_code = 500
    error: str | None = None

    try:
        response = await call_next(request)
        status_code = getattr(response, "status_code", 200) or 200
        return response
    except Exception as e:
        error = exception_summary(e, max_len=200 if settings.debug else 0)
        raise
    finally:
        request_id = getattr(getattr(request, "state", None), "request_id", None)
        log_http_request(
            request,
            status_code=status_code,
            duration_ms=timer.elapsed_ms(),
            error=error,
            request_id=request_id,
        )


def _normalize_request_id(value: str | None) -> str | None:
    """对外部传入的 request id 做一次简单归一化，避免日志注入/过长字符串。"""
    if not value or not isinstance(value, str):
        return None
    s = value.strip()
    if not s:
        return None
    if len(s) > 64:
        return None
    if any(ord(ch) < 32 for ch in s):
        return None
    return s


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """为每个请求生成/透传 X-Request-Id，并写入响应头。"""
    incoming = request.headers.get("x-request-id") or request.headers.get("x-correlation-id")
    rid = _normalize_request_id(incoming) or uuid.uuid4().hex
    request.state.request_id = rid

    response = await call_next(request)
    response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler_with_request_id(request: Request, exc: HTTPException):
    response = await fastapi_http_exception_handler(request, exc)
    rid = getattr(getattr(request, "state", None), "request_id", None)
    if rid:
        response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler_with_request_id(request: Request, exc: RequestValidationError):
    response = await request_validation_exception_handler(request, exc)
    rid = getattr(getattr(request, "state", None), "request_id", None)
    if rid:
        response.headers["X-Request-Id"] = rid
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = getattr(getattr(request, "state", None), "request_id", None)
    logger.exception("[UNHANDLED] request_id=%s", rid or "-")

    # 默认不泄露内部异常细节；debug 时给一个可读摘要
    detail = "INTERNAL_ERROR"
    if settings.debug:
        detail = exception_summary(exc, max_len=200)

    payload: dict[str, object] = {"detail": detail}
    if rid:
        payload["request_id"] = rid

    headers = {"X-Request-Id": rid} if rid else None
    return JSONResponse(payload, status_code=500, headers=headers)

# Register API routers
app.include_router(entries_router, prefix=settings.api_prefix)
app.include_router(uploads_router, prefix=settings.api_prefix)
app.include_router(protection_router, prefix=settings.api_prefix)

# 上传后的文件通过 /uploads/<filename> 直接访问
app.mount(
    settings.upload_url_prefix,
    StaticFiles(directory=str(settings.resolve_upload_dir()), check_dir=False),
    name="uploads",
)


@app.on_event("startup")
async def startup_event():
    """Initialize database and upload directory on startup"""
    settings.resolve_upload_dir().mkdir(parents=True, exist_ok=True)
    await init_db()
    logger.info("[STARTUP] Dayleaf API %s ready (db=%s)", APP_VERSION, engine.dialect.name)


@app.get("/")
async def root():
    """Root endpoint"""
    return {"message": "Dayleaf API", "version": APP_VERSION}


@app.get("/health")
async def health_check():
    """Health check endpoint（包含 DB 可用性探测）。"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.exception("[HEALTH] Database check failed: %s", exception_summary(e))
        raise HTTPException(status_code=503, detail="DB_UNAVAILABLE") from e

    return {"status": "healthy", "db": "ok"}
