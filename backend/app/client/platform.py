"""平台能力接口：存储 / 相机 / 导航。

页面层（presenter）只依赖这里的协议，Web / 移动端 / 无界面环境各自提供实现，
不再维护多份几乎相同的页面代码。
"""

from __future__ import annotations

import json
import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MediaFile:
    """待上传的单个媒体文件（图片 / 视频 / 音频）。"""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: str | Path, content_type: str | None = None) -> "MediaFile":
        p = Path(path)
        guessed, _ = mimetypes.guess_type(p.name)
        return cls(
            filename=p.name,
            content_type=content_type or guessed or "application/octet-stream",
            data=p.read_bytes(),
        )


class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class Camera(Protocol):
    async def capture(self) -> MediaFile | None:
        """拍摄/选择一个媒体文件；用户取消时返回 None。"""
        ...


class Navigator(Protocol):
    def navigate(self, route: str) -> None: ...

    def back(self) -> None: ...

    def notify(self, title: str, message: str = "", *, variant: str = "default") -> None: ...


@dataclass
class Platform:
    storage: KeyValueStorage
    camera: Camera
    navigation: Navigator


class MemoryStorage:
    """进程内存储（测试 / 无界面环境）。"""

    def __init__(self, initial: dict[str, str] | None = None):
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """把键值对存成一个 JSON 文件，读坏了就当作空。"""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning("[STORAGE] unreadable store %s, starting empty", self.path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(items, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    def get_item(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read_all()
        items[key] = value
        self._write_all(items)

    def remove_item(self, key: str) -> None:
        items = self._read_all()
        if key in items:
            del items[key]
            self._write_all(items)


class FileCamera:
    """从本地文件“拍摄”：依次返回给定路径的文件，用完返回 None。"""

    def __init__(self, paths: list[str | Path] | None = None):
        self._queue = [Path(p) for p in (paths or [])]

    def enqueue(self, path: str | Path) -> None:
        self._queue.append(Path(path))

    async def capture(self) -> MediaFile | None:
        if not self._queue:
            return None
        return MediaFile.from_path(self._queue.pop(0))


@dataclass
class Notice:
    title: str
    message: str = ""
    variant: str = "default"


@dataclass
class HeadlessNavigator:
    """无界面导航：记录路由历史与提示信息，并写日志。"""

    history: list[str] = field(default_factory=lambda: ["/"])
    notices: list[Notice] = field(default_factory=list)

    @property
    def current(self) -> str:
        return self.history[-1] if self.history else "/"

    def navigate(self, route: str) -> None:
        self.history.append(route)

    def back(self) -> None:
        if len(self.history) > 1:
            self.history.pop()

    def notify(self, title: str, message: str = "", *, variant: str = "default") -> None:
        self.notices.append(Notice(title=title, message=message, variant=variant))
        log = logger.warning if variant == "destructive" else logger.info
        log("[NOTICE] %s: %s", title, message)
