from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from ..database import Base


class DiaryEntry(Base):
    """日记表 - 存储用户写下的每一篇日记

    说明：
    - media_urls_json / tags_json 以 JSON 数组文本存储（SQLite 与 PostgreSQL 通用）。
    - media_urls_json 里只允许服务端返回的文件 URL，本地预览引用不会落库。
    - user_email 统一小写存储；查询时同样做小写比较。
    """

    __tablename__ = "diary_entries"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(Text, nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    media_urls_json = Column(Text, nullable=False, default="[]")
    tags_json = Column(Text, nullable=False, default="[]")
    # feeling = {emoji, label}；两列要么同时有值，要么同时为空
    feeling_emoji = Column(String(32))
    feeling_label = Column(String(64))
    location = Column(String(255))
    sensitive = Column(Boolean, nullable=False, default=False)
    user_email = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
