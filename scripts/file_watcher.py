import logging
import os
import queue
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from watchdog.events import FileSystemEventHandler

# Watchdog observer selection (polling is more reliable on Docker/Windows bind mounts)
USE_POLLING = os.getenv("WATCH_USE_POLLING", "1").lower() in ("1", "true", "yes")

if USE_POLLING:
    from watchdog.observers.polling import PollingObserver as Observer
    OBSERVER_NAME = "PollingObserver"
else:
    from watchdog.observers import Observer
    OBSERVER_NAME = "Observer"


from ingestor.emitter import EventEmitter
from ingestor.enrichment import GeoEnricher
from ingestor.tail import TailDriver
from storage.factory import get_storage_backend

# -----------------------
# Logging setup
# -----------------------
logger = logging.getLogger(__name__)

# -----------------------
# Config (paths and tuning from env, with sane defaults)
# -----------------------
AUTH_LOG_PATH = Path(os.getenv("AUTH_LOG_PATH", "/var/log/auth.log"))
DATA_DIR = Path(os.getenv("DATA_DIR", "/app/data"))
DB_PATH = Path(os.getenv("DB_PATH", str(DATA_DIR / "ssheat.db")))
MAX_DB_SIZE_MB = int(os.getenv("MAX_DB_SIZE_MB", "100"))
CHECKPOINT_ID = os.getenv("CHECKPOINT_ID") or None

# Watch supervisor tuning
WATCH_RETRY_BASE_SEC = float(os.getenv("WATCH_RETRY_BASE_SEC", "1"))
WATCH_RETRY_MAX_SEC = float(os.getenv("WATCH_RETRY_MAX_SEC", "60"))
WATCH_DEGRADED_AFTER = int(os.getenv("WATCH_DEGRADED_AFTER", "3"))
QUEUE_POLL_SEC = 1.0


# -----------------------
# Health
# -----------------------
@dataclass
class WatchHealth:
    """Watch subscription health, surfaced by the API's /health route."""

    status: str = "starting"
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    last_pass_at: Optional[str] = None
    passes: int = 0
    failed_passes: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record_subscribed(self) -> None:
        with self._lock:
            self.status = "ok"
            self.consecutive_failures = 0

    def record_failure(self, error: Exception, degraded_after: int) -> None:
        with self._lock:
            self.consecutive_failures += 1
            self.last_error = f"{type(error).__name__}: {error}"
            if self.consecutive_failures >= degraded_after:
                self.status = "degraded"

    def record_pass(self, ok: bool) -> None:
        with self._lock:
            self.passes += 1
            if not ok:
                self.failed_passes += 1
            self.last_pass_at = datetime.now(timezone.utc).isoformat(timespec="seconds")

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "status": self.status,
                "consecutive_failures": self.consecutive_failures,
                "last_error": self.last_error,
                "last_pass_at": self.last_pass_at,
                "passes": self.passes,
                "failed_passes": self.failed_passes,
            }


def backoff_delay(failures: int, base: float = WATCH_RETRY_BASE_SEC, cap: float = WATCH_RETRY_MAX_SEC) -> float:
    """Exponential backoff: base, 2*base, 4*base ... capped at `cap`."""
    if failures <= 0:
        return 0.0
    return min(cap, base * (2 ** (failures - 1)))


# -----------------------
# Watcher
# -----------------------
class LogFileEventHandler(FileSystemEventHandler):
    """Turns watchdog events for one file into pass requests."""

    def __init__(self, log_path: Path, requests_queue: "queue.Queue[str]"):
        super().__init__()
        self.log_path = Path(log_path).resolve()
        self.requests = requests_queue

    def _is_target(self, src) -> bool:
        return Path(os.fsdecode(src)).resolve() == self.log_path

    def on_modified(self, event) -> None:
        if event.is_directory or not self._is_target(event.src_path):
            return
        self.requests.put("modified")

    def on_created(self, event) -> None:
        if event.is_directory or not self._is_target(event.src_path):
            return
        self.requests.put("created")

    def on_moved(self, event) -> None:
        if event.is_directory:
            return
        # a rotated-in file arrives by rename onto the log path
        dest_path = getattr(event, "dest_path", event.src_path)
        if self._is_target(dest_path):
            self.requests.put("moved")


class TailService:
    """
    Owns the single pass worker and the supervised watchdog subscription.

    Passes run one at a time on the worker thread: one backlog pass at
    startup, then one per batch of file events. A failing observer is
    rebuilt with exponential backoff instead of taking the process down.
    """

    def __init__(
        self,
        driver: TailDriver,
        log_path: Path,
        observer_factory: Callable[[], Any] = Observer,
        enricher: Optional[GeoEnricher] = None,
        retry_base: float = WATCH_RETRY_BASE_SEC,
        retry_max: float = WATCH_RETRY_MAX_SEC,
        degraded_after: int = WATCH_DEGRADED_AFTER,
        poll_interval: float = QUEUE_POLL_SEC,
    ):
        self.driver = driver
        self.log_path = Path(log_path)
        self.observer_factory = observer_factory
        self.enricher = enricher
        self.retry_base = retry_base
        self.retry_max = retry_max
        self.degraded_after = degraded_after
        self.poll_interval = poll_interval

        self.health = WatchHealth()
        self.requests: "queue.Queue[str]" = queue.Queue()
        self.stop_evt = threading.Event()
        self.observer = None
        self._thread: Optional[threading.Thread] = None

    # ----- passes -----
    def run_pass(self, reason: str) -> bool:
        """Run one pass; log and drop it on failure. Returns True on success."""
        try:
            self.driver.run_pass(self.log_path)
        except Exception as exc:
            logger.error("Pass (%s) over %s failed: %s", reason, self.log_path, exc, exc_info=True)
            self.health.record_pass(ok=False)
            return False
        self.health.record_pass(ok=True)
        return True

    def _drain_requests(self) -> int:
        drained = 0
        while True:
            try:
                self.requests.get_nowait()
                drained += 1
            except queue.Empty:
                return drained

    # ----- subscription -----
    def _subscribe(self) -> bool:
        """Start a fresh observer on the log's directory. Returns False on failure."""
        try:
            observer = self.observer_factory()
            handler = LogFileEventHandler(self.log_path, self.requests)
            observer.schedule(handler, str(self.log_path.parent), recursive=False)
            observer.start()
        except Exception as exc:
            self.health.record_failure(exc, self.degraded_after)
            logger.warning(
                "Watch on %s failed (%d in a row): %s",
                self.log_path.parent,
                self.health.consecutive_failures,
                exc,
            )
            return False
        self.observer = observer
        self.health.record_subscribed()
        logger.info("Watching %s using %s", self.log_path, type(observer).__name__)
        return True

    def _stop_observer(self) -> None:
        observer, self.observer = self.observer, None
        if observer is None:
            return
        try:
            observer.stop()
            observer.join(timeout=5)
        except Exception as exc:
            logger.warning("Error stopping observer: %s", exc)

    def _ensure_subscribed(self) -> None:
        """Keep trying to subscribe until it works or the service stops."""
        while not self.stop_evt.is_set():
            if self._subscribe():
                # the file may have changed while we were not watching
                self.requests.put("resubscribed")
                return
            delay = backoff_delay(self.health.consecutive_failures, self.retry_base, self.retry_max)
            self.stop_evt.wait(delay)

    # ----- main loop -----
    def run(self) -> None:
        """Backlog pass, then serve file events until stop() is called."""
        logger.info("Backlog pass over %s", self.log_path)
        self.run_pass("backlog")

        self._ensure_subscribed()
        while not self.stop_evt.is_set():
            if self.observer is None or not self.observer.is_alive():
                err = RuntimeError("observer thread died")
                self.health.record_failure(err, self.degraded_after)
                logger.warning("Watch delivery failed on %s: %s", self.log_path, err)
                self._stop_observer()
                self.stop_evt.wait(backoff_delay(self.health.consecutive_failures, self.retry_base, self.retry_max))
                self._ensure_subscribed()
                continue

            try:
                reason = self.requests.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            # every pass reads to EOF, so queued events collapse into one
            self._drain_requests()
            self.run_pass(reason)

        self._stop_observer()

    def start(self) -> None:
        if self.enricher is not None:
            self.enricher.start()
        self._thread = threading.Thread(target=self.run, name="tail-service", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 10.0) -> None:
        self.stop_evt.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self._stop_observer()
        if self.enricher is not None:
            self.enricher.shutdown(cancel=True)


# -----------------------
# Wiring
# -----------------------
_service: Optional[TailService] = None
_backend = None


def build_service(log_path: Path = AUTH_LOG_PATH, db_path: Path = DB_PATH) -> TailService:
    """Wire storage, enrichment, emitter and driver into a TailService."""
    global _backend
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    _backend = get_storage_backend("sqlite", db_path=str(db_path), max_db_size_mb=MAX_DB_SIZE_MB)
    enricher = GeoEnricher(_backend)
    emitter = EventEmitter(_backend, enricher)
    driver = TailDriver(_backend, emitter, file_id=CHECKPOINT_ID)
    logger.info("Config: log=%s, db=%s, observer=%s", log_path, db_path, OBSERVER_NAME)
    return TailService(driver, log_path, enricher=enricher)


def start_watcher() -> TailService:
    global _service
    if _service is None:
        _service = build_service()
        _service.start()
    return _service


def stop_watcher() -> None:
    global _service, _backend
    if _service is not None:
        _service.stop()
        _service = None
    if _backend is not None:
        _backend.close()
        _backend = None


def get_service() -> Optional[TailService]:
    return _service


# -----------------------
# Main
# -----------------------
if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    start_watcher()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        stop_watcher()
