from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import event, text
from .config import settings

# SQLite 默认配置：
# - busy_timeout：降低并发写入下的 “database is locked”
# - WAL：上传/列表请求并行时读写互不阻塞
# - foreign_keys：打开外键约束（SQLite 默认关闭，评论的级联删除依赖它）
_is_sqlite = str(settings.database_url or "").startswith("sqlite")
_connect_args = {"timeout": 30} if _is_sqlite else {}

# Create async engine (supports both SQLite and PostgreSQL)
engine = create_async_engine(
    settings.database_url,
    echo=settings.sql_echo,
    pool_pre_ping=True,
    future=True,
    connect_args=_connect_args,
)


def enable_sqlite_foreign_keys(sync_engine) -> None:
    """给 SQLite 连接打开外键约束（测试里的内存库也需要调用）。"""

    @event.listens_for(sync_engine, "connect")
    def _set_sqlite_fk(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()


if _is_sqlite:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout=30000;")
        cursor.close()

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()


async def get_db():
    """Dependency for getting database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db():
    """Initialize database tables"""
    # 确保所有模型都已被导入，从而注册到 Base.metadata
    from . import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await _ensure_schema(conn)


async def _ensure_schema(conn) -> None:
    """做一层轻量 schema 兼容，避免旧库升级后缺列导致报错。

    说明：
    - 本项目未引入 Alembic，对“新增字段”采用最小成本的自修复方式。
    - PostgreSQL 使用 IF NOT EXISTS；SQLite 通过 PRAGMA table_info 判断。
    """
    dialect = conn.dialect.name

    # 早期版本的日记表没有 sensitive / tags_json
    added_columns = {
        "sensitive": "BOOLEAN NOT NULL DEFAULT false",
        "tags_json": "TEXT NOT NULL DEFAULT '[]'",
    }
    if dialect == "sqlite":
        result = await conn.execute(text("PRAGMA table_info(diary_entries)"))
        cols = {row[1] for row in result.fetchall()}
        for name, ddl in added_columns.items():
            if name not in cols:
                await conn.execute(text(f"ALTER TABLE diary_entries ADD COLUMN {name} {ddl}"))
    elif dialect.startswith("postgresql"):
        for name, ddl in added_columns.items():
            await conn.execute(text(f"ALTER TABLE diary_entries ADD COLUMN IF NOT EXISTS {name} {ddl}"))

    # 列表默认按创建时间倒序；按用户过滤时走复合索引
    await conn.execute(
        text("CREATE INDEX IF NOT EXISTS idx_diary_entries_created_at_desc ON diary_entries (created_at DESC)")
    )
    await conn.execute(
        text(
            "CREATE INDEX IF NOT EXISTS idx_diary_entries_user_created "
            "ON diary_entries (user_email, created_at)"
        )
    )
    await conn.execute(
        text("CREATE INDEX IF NOT EXISTS idx_comments_entry_created ON comments (entry_id, created_at)")
    )
