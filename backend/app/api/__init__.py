from .entries import router as entries_router
from .uploads import router as uploads_router
from .protection import router as protection_router

__all__ = [
    "entries_router",
    "uploads_router",
    "protection_router",
]
