from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_APP_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _APP_DIR.parent
_REPO_ROOT = _BACKEND_DIR.parent

# 与原版上传接口保持一致：图片 / 视频 / 音频
_DEFAULT_UPLOAD_TYPES = ",".join(
    [
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/heic",
        "image/heif",
        "video/mp4",
        "video/quicktime",
        "video/x-m4v",
        "video/webm",
        "video/3gpp",
        "video/x-matroska",
        "audio/mp3",
        "audio/mpeg",
        "audio/wav",
        "audio/webm",
        "audio/ogg",
    ]
)


def _load_root_dotenv() -> None:
    """
    统一从仓库根目录读取 `.env`（并保证其优先级最高）。

    说明：
    - 启动脚本通常会 `cd backend`，导致工具默认只会找子目录下的 `.env`。
    - 这里显式加载：先加载 `backend/.env`，再加载根目录 `.env`，并且 `override=True`。
    """

    backend_env = _BACKEND_DIR / ".env"
    root_env = _REPO_ROOT / ".env"

    for env_file in (backend_env, root_env):
        if env_file.exists():
            load_dotenv(env_file, override=True, encoding="utf-8")


def split_csv(value: str | None) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


class Settings(BaseSettings):
    """Application settings"""

    # Server（供 run.py 使用）
    backend_host: str = "0.0.0.0"
    backend_port: int = 5000
    backend_reload: bool = True

    # Database
    # 优先使用 DATABASE_URL（例如 postgresql+asyncpg://...）；不配置时使用 SQLITE_DB_PATH
    database_url: str | None = None
    sqlite_db_path: str = "dayleaf.db"

    # API
    api_prefix: str = "/api"
    debug: bool = True
    # 是否输出 SQLAlchemy 的 SQL 日志，排查事务时再临时打开
    sql_echo: bool = False

    # CORS（逗号分隔；"*" 表示允许所有来源，此时强制关闭 allow_credentials）
    cors_allow_origins: str = "*"
    cors_allow_credentials: bool = False
    cors_allow_methods: str = "*"
    cors_allow_headers: str = "*"

    # Uploads
    # - 文件落盘目录（相对路径按仓库根目录解析）
    # - 对外 URL 前缀：返回给前端的 url 形如 /uploads/<filename>
    upload_dir: str = "uploads"
    upload_url_prefix: str = "/uploads"
    upload_max_mb: int = 50
    upload_allowed_types: str = _DEFAULT_UPLOAD_TYPES
    upload_chunk_size: int = 1024 * 1024

    # Entry listing
    entries_default_limit: int = 200
    entries_max_limit: int = 500

    # Sensitive-entry protection
    # - 每个用户可以通过 /api/protection-password 设置自己的密码（存 PBKDF2 hash）
    # - 未设置时回退到这里的全局密码（二选一）：PROTECTION_PASSWORD_HASH / PROTECTION_PASSWORD
    protection_password_hash: str | None = None
    protection_password: str | None = None
    protection_password_min_length: int = 6

    # verify-password 的 IP 维度限流；max_attempts=0 表示不限流
    verify_rate_limit_window_seconds: int = 300
    verify_rate_limit_max_attempts: int = 0

    # Access log（每个请求一行 logfmt，写入 app.access logger）
    access_log_enabled: bool = True
    access_log_ignore_paths: str = "/health"

    @model_validator(mode="after")
    def _build_database_url_if_missing(self) -> "Settings":
        if self.database_url and self.database_url.strip():
            return self

        db_path = Path(self.sqlite_db_path)
        if not db_path.is_absolute():
            db_path = (_REPO_ROOT / db_path).resolve()

        self.database_url = f"sqlite+aiosqlite:///{db_path.as_posix()}"
        return self

    @model_validator(mode="after")
    def _normalize_uploads(self) -> "Settings":
        if int(self.upload_max_mb or 0) <= 0:
            self.upload_max_mb = 50
        if int(self.upload_chunk_size or 0) <= 0:
            self.upload_chunk_size = 1024 * 1024

        prefix = "/" + (self.upload_url_prefix or "").strip().strip("/")
        self.upload_url_prefix = prefix if prefix != "/" else "/uploads"

        if not split_csv(self.upload_allowed_types):
            self.upload_allowed_types = _DEFAULT_UPLOAD_TYPES
        return self

    @model_validator(mode="after")
    def _normalize_listing(self) -> "Settings":
        if int(self.entries_max_limit or 0) <= 0:
            self.entries_max_limit = 500
        limit = int(self.entries_default_limit or 0)
        if limit <= 0 or limit > self.entries_max_limit:
            self.entries_default_limit = min(200, self.entries_max_limit)
        return self

    @model_validator(mode="after")
    def _normalize_protection(self) -> "Settings":
        self.protection_password_hash = (self.protection_password_hash or "").strip() or None
        self.protection_password = (self.protection_password or "").strip() or None

        if int(self.protection_password_min_length or 0) <= 0:
            self.protection_password_min_length = 6
        if int(self.verify_rate_limit_max_attempts or 0) < 0:
            self.verify_rate_limit_max_attempts = 0
        if int(self.verify_rate_limit_window_seconds or 0) <= 0:
            self.verify_rate_limit_window_seconds = 300
        return self

    @property
    def upload_max_bytes(self) -> int:
        return int(self.upload_max_mb) * 1024 * 1024

    @property
    def upload_allowed_type_set(self) -> set[str]:
        return {t.lower() for t in split_csv(self.upload_allowed_types)}

    def resolve_upload_dir(self) -> Path:
        path = Path(self.upload_dir)
        if path.is_absolute():
            return path
        # 统一落在仓库根目录，和 SQLite 文件放在一起
        return (_REPO_ROOT / path).resolve()

    model_config = SettingsConfigDict(
        case_sensitive=False
    )


_load_root_dotenv()
settings = Settings()
