from .entry_store import EntryFilters, EntryStore
from .protection import ProtectionPasswordError, ProtectionService
from .uploads import UploadRejected, UploadService

__all__ = [
    "EntryFilters",
    "EntryStore",
    "ProtectionPasswordError",
    "ProtectionService",
    "UploadRejected",
    "UploadService",
]
