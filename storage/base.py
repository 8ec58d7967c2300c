from abc import ABC, abstractmethod
from typing import Any, Optional

from .models import AuthAttempt, FileCheckpoint, GeoInfo


class StorageError(RuntimeError):
    """Backend failure while reading or writing persisted state."""


class CheckpointStore(ABC):
    @abstractmethod
    def load_checkpoint(self, file_id: str) -> Optional[FileCheckpoint]:
        """Return the checkpoint for this file identity, or None."""

    @abstractmethod
    def save_checkpoint(self, checkpoint: FileCheckpoint) -> None:
        """Insert or replace the checkpoint."""


class AttemptSink(ABC):
    @abstractmethod
    def save_attempt(self, attempt: AuthAttempt) -> None:
        """Persist one attempt. Must not return until it is stored."""


class GeoCache(ABC):
    @abstractmethod
    def has_geo_info(self, ip: str) -> bool:
        """True if enrichment for this IP is already stored."""

    @abstractmethod
    def get_geo_info(self, ip: str) -> Optional[GeoInfo]:
        ...

    @abstractmethod
    def save_geo_info(self, info: GeoInfo) -> None:
        ...


class StorageBackend(CheckpointStore, AttemptSink, GeoCache):
    """Abstract storage backend: checkpoints, attempts and geo cache in one place."""

    @abstractmethod
    def connect(self):
        """Initialize DB connection and schema if needed."""

    @abstractmethod
    def query_attempts(self, filters: dict[str, Any]) -> list[dict[str, Any]]:
        """Query stored attempts (used by the API and scripts)."""

    @abstractmethod
    def close(self):
        """Close DB connection cleanly."""
