from .base import AttemptSink, CheckpointStore, GeoCache, StorageBackend, StorageError
from .factory import get_storage_backend
from .models import AuthAttempt, FileCheckpoint, GeoInfo

__all__ = [
    "AttemptSink",
    "AuthAttempt",
    "CheckpointStore",
    "FileCheckpoint",
    "GeoCache",
    "GeoInfo",
    "StorageBackend",
    "StorageError",
    "get_storage_backend",
]
