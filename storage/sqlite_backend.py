import logging
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Optional

from .base import StorageBackend, StorageError
from .models import AuthAttempt, FileCheckpoint, GeoInfo

logger = logging.getLogger(__name__)

GEO_COLUMNS = list(GeoInfo.model_fields)


class SQLiteBackend(StorageBackend):
    def __init__(self, db_path="ssheat.db", max_db_size_mb=100):
        """
        SQLite backend for checkpoints, attempts and the geo cache.
        :param db_path: Path to sqlite db file.
        :param max_db_size_mb: Maximum DB size before pruning oldest attempts.
        """
        self.db_path = db_path
        self.max_db_size_mb = max_db_size_mb
        self.conn = None
        # shared by the pass worker, enrichment workers and the API
        self._lock = threading.Lock()

    def connect(self):
        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self._create_schema()
        except sqlite3.Error as exc:
            raise StorageError(f"cannot open {self.db_path}: {exc}") from exc

    def _create_schema(self):
        self.conn.executescript("""
        CREATE TABLE IF NOT EXISTS file_checkpoints (
            file_id TEXT PRIMARY KEY,
            epoch_date TEXT NOT NULL,
            last_line TEXT,
            last_line_occurrence INTEGER NOT NULL DEFAULT 1,
            updated_at TEXT NOT NULL
        );
        CREATE TABLE IF NOT EXISTS auth_attempts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            ip TEXT NOT NULL,
            username TEXT,
            host TEXT NOT NULL,
            attempted_at TEXT NOT NULL,
            source_path TEXT,
            ingest_time TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_attempts_ip ON auth_attempts(ip);
        CREATE TABLE IF NOT EXISTS geo_info (
            ip TEXT PRIMARY KEY,
            country_code TEXT,
            country_name TEXT,
            region_code TEXT,
            region_name TEXT,
            city TEXT,
            zip_code TEXT,
            time_zone TEXT,
            latitude REAL,
            longitude REAL,
            metro_code INTEGER
        );
        """)
        self.conn.commit()

    def _execute(self, sql: str, params=()) -> list[sqlite3.Row]:
        if self.conn is None:
            raise StorageError("backend is not connected")
        with self._lock:
            try:
                cur = self.conn.execute(sql, params)
                rows = cur.fetchall()
                self.conn.commit()
                return rows
            except sqlite3.Error as exc:
                self.conn.rollback()
                raise StorageError(str(exc)) from exc

    # ----- checkpoints -----
    def load_checkpoint(self, file_id: str) -> Optional[FileCheckpoint]:
        rows = self._execute(
            "SELECT file_id, epoch_date, last_line, last_line_occurrence "
            "FROM file_checkpoints WHERE file_id = ?",
            (file_id,),
        )
        if not rows:
            return None
        row = rows[0]
        return FileCheckpoint(
            file_id=row["file_id"],
            epoch_date=datetime.fromisoformat(row["epoch_date"]),
            last_line=row["last_line"],
            last_line_occurrence=row["last_line_occurrence"],
        )

    def save_checkpoint(self, checkpoint: FileCheckpoint) -> None:
        self._execute(
            """
            INSERT OR REPLACE INTO file_checkpoints
            (file_id, epoch_date, last_line, last_line_occurrence, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                checkpoint.file_id,
                checkpoint.epoch_date.isoformat(),
                checkpoint.last_line,
                checkpoint.last_line_occurrence,
                datetime.now(timezone.utc).isoformat(),
            ),
        )

    # ----- attempts -----
    def _db_size_mb(self) -> float:
        """Return current DB size in MB (0 if not created yet)."""
        if os.path.exists(self.db_path):
            return os.path.getsize(self.db_path) / (1024 * 1024)
        return 0.0

    def _prune_oldest_rows(self, target_size_mb: float = None):
        """
        Delete oldest attempts until DB size is under target_size_mb.
        Runs in 1000-row chunks to avoid long locks.
        """
        if target_size_mb is None:
            target_size_mb = self.max_db_size_mb * 0.9  # leave a 10% buffer

        while self._db_size_mb() > target_size_mb:
            rows = self._execute("SELECT COUNT(*) FROM auth_attempts")
            if rows[0][0] == 0:
                logger.warning("DB still %.1f MB with no attempts left to prune", self._db_size_mb())
                break
            self._execute(
                "DELETE FROM auth_attempts WHERE id IN "
                "(SELECT id FROM auth_attempts ORDER BY id ASC LIMIT 1000)"
            )
            self._execute("VACUUM")

    def save_attempt(self, attempt: AuthAttempt) -> None:
        """Write one attempt, pruning if DB exceeds max size."""
        self._execute(
            """
            INSERT INTO auth_attempts (ip, username, host, attempted_at, source_path, ingest_time)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                attempt.ip,
                attempt.username,
                attempt.host,
                attempt.timestamp.isoformat(),
                attempt.source_path,
                datetime.now(timezone.utc).isoformat(),
            ),
        )

        if self._db_size_mb() > self.max_db_size_mb:
            self._prune_oldest_rows()

    def query_attempts(self, filters: dict[str, Any]) -> list[dict[str, Any]]:
        query = "SELECT * FROM auth_attempts WHERE 1=1"
        params = []

        if filters.get("ip"):
            query += " AND ip = ?"
            params.append(filters["ip"])
        if filters.get("host"):
            query += " AND host = ?"
            params.append(filters["host"])
        query += " ORDER BY id DESC LIMIT ?"
        params.append(int(filters.get("limit", 100)))

        return [dict(row) for row in self._execute(query, params)]

    # ----- geo cache -----
    def has_geo_info(self, ip: str) -> bool:
        return bool(self._execute("SELECT 1 FROM geo_info WHERE ip = ?", (ip,)))

    def get_geo_info(self, ip: str) -> Optional[GeoInfo]:
        rows = self._execute("SELECT * FROM geo_info WHERE ip = ?", (ip,))
        if not rows:
            return None
        return GeoInfo(**dict(rows[0]))

    def save_geo_info(self, info: GeoInfo) -> None:
        placeholders = ", ".join("?" for _ in GEO_COLUMNS)
        self._execute(
            f"INSERT OR REPLACE INTO geo_info ({', '.join(GEO_COLUMNS)}) VALUES ({placeholders})",
            tuple(getattr(info, c) for c in GEO_COLUMNS),
        )

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None
