# api/main.py
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel

# watcher lifecycle
from scripts.file_watcher import DB_PATH, MAX_DB_SIZE_MB, get_service, start_watcher, stop_watcher
from storage.base import StorageBackend, StorageError
from storage.factory import get_storage_backend
from storage.models import GeoInfo

# ----- logging -----
import logging
logger = logging.getLogger(__name__)


# ----- lifespan (startup/shutdown) -----
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    start_watcher()
    logger.info("[ssheat] Tail service started")
    yield
    # Shutdown
    try:
        stop_watcher()
        logger.info("[ssheat] Tail service stopped")
    except Exception as e:
        logger.warning("[ssheat] stop_watcher error: %s", e)

app = FastAPI(
    title="ssheat API",
    version="0.1.0",
    lifespan=lifespan,
)


def open_backend() -> StorageBackend:
    return get_storage_backend("sqlite", db_path=str(DB_PATH), max_db_size_mb=MAX_DB_SIZE_MB)


def get_backend():
    """One connection per request, closed afterwards."""
    try:
        backend = open_backend()
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"DB error: {e}")
    try:
        yield backend
    finally:
        backend.close()


# ----- Schemas -----
class AttemptItem(BaseModel):
    id: int
    ip: str
    username: Optional[str] = None
    host: str
    attempted_at: str
    source_path: Optional[str] = None
    ingest_time: str


# ----- Routes -----
@app.get("/health")
def health():
    service = get_service()
    watcher = service.health.snapshot() if service else {"status": "stopped"}
    body = {"status": "ok", "watcher": watcher}
    try:
        backend = open_backend()
        try:
            backend.query_attempts({"limit": 1})
        finally:
            backend.close()
    except StorageError as e:
        body.update(status="degraded", error=str(e))
    if watcher["status"] == "degraded":
        body["status"] = "degraded"
    return body


@app.get("/attempts", response_model=List[AttemptItem])
def list_attempts(
    ip: Optional[str] = None,
    host: Optional[str] = None,
    limit: int = 100,
    backend: StorageBackend = Depends(get_backend),
):
    try:
        rows = backend.query_attempts({"ip": ip, "host": host, "limit": limit})
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"DB error: {e}")
    return [AttemptItem(**r) for r in rows]


@app.get("/geo/{ip}", response_model=GeoInfo)
def get_geo(ip: str, backend: StorageBackend = Depends(get_backend)):
    try:
        info = backend.get_geo_info(ip)
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"DB error: {e}")
    if info is None:
        raise HTTPException(status_code=404, detail=f"No geo info for {ip}")
    return info
