"""
IP geolocation enrichment.

GeoClient does the HTTP lookup. GeoEnricher runs lookups on a small pool of
worker threads fed by a bounded queue, so a burst of attempts never blocks
a pass. When the queue is full, new IPs are dropped and counted.
"""

import logging
import os
import queue
import threading
from typing import Optional

import requests
from pydantic import ValidationError

from storage.base import GeoCache
from storage.models import GeoInfo

logger = logging.getLogger(__name__)

GEOIP_URL = os.getenv("GEOIP_URL", "https://freegeoip.app/json/{ip}")
GEOIP_TIMEOUT_SEC = float(os.getenv("GEOIP_TIMEOUT_SEC", "10"))
ENRICH_WORKERS = int(os.getenv("ENRICH_WORKERS", "4"))
ENRICH_QUEUE_SIZE = int(os.getenv("ENRICH_QUEUE_SIZE", "1000"))


class GeoClient:
    def __init__(self, url_template: str = GEOIP_URL, timeout: float = GEOIP_TIMEOUT_SEC, session=None):
        self.url_template = url_template
        self.timeout = timeout
        self.session = session or requests.Session()

    def lookup(self, ip: str) -> GeoInfo:
        """Fetch geo info for `ip`. Raises requests/pydantic errors on failure."""
        response = self.session.get(self.url_template.format(ip=ip), timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"unexpected geo response for {ip}: {data!r}")
        data["ip"] = ip
        return GeoInfo.model_validate(data)


class GeoEnricher:
    def __init__(
        self,
        cache: GeoCache,
        client: Optional[GeoClient] = None,
        workers: int = ENRICH_WORKERS,
        queue_size: int = ENRICH_QUEUE_SIZE,
    ):
        self.cache = cache
        self.client = client or GeoClient()
        self.workers = workers
        self.queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self.dropped = 0
        self.completed = 0

        self._cancel = threading.Event()
        self._pending: set[str] = set()
        self._pending_lock = threading.Lock()
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        for i in range(self.workers):
            t = threading.Thread(target=self._worker, name=f"geo-enricher-{i}", daemon=True)
            t.start()
            self._threads.append(t)

    def submit(self, ip: str) -> bool:
        """Queue a lookup without blocking. Returns False if dropped or already pending."""
        if self._cancel.is_set():
            return False
        with self._pending_lock:
            if ip in self._pending:
                return False
            try:
                self.queue.put_nowait(ip)
            except queue.Full:
                self.dropped += 1
                logger.warning("Enrichment queue full; dropping lookup for %s (%d dropped)", ip, self.dropped)
                return False
            self._pending.add(ip)
        return True

    def enrich(self, ip: str) -> Optional[GeoInfo]:
        """Look up one IP unless it is already cached. Errors are logged, never raised."""
        try:
            if self.cache.has_geo_info(ip):
                logger.debug("Skipping already learned IP %s", ip)
                return None
            info = self.client.lookup(ip)
            self.cache.save_geo_info(info)
            logger.info("Geo info for %s: %s, %s", ip, info.country_name, info.city)
            return info
        except (requests.RequestException, ValidationError, ValueError) as exc:
            logger.warning("Geo lookup failed for %s: %s", ip, exc)
        except Exception as exc:
            logger.error("Unexpected error enriching %s: %s", ip, exc, exc_info=True)
        return None

    def _worker(self) -> None:
        while not self._cancel.is_set():
            try:
                ip = self.queue.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                if not self._cancel.is_set():
                    self.enrich(ip)
            finally:
                with self._pending_lock:
                    self._pending.discard(ip)
                    self.completed += 1
                self.queue.task_done()

    def shutdown(self, cancel: bool = True, timeout: float = 5.0) -> None:
        """Stop the workers. With cancel=True, queued lookups are discarded."""
        if cancel:
            self._cancel.set()
            while True:
                try:
                    self.queue.get_nowait()
                    self.queue.task_done()
                except queue.Empty:
                    break
            with self._pending_lock:
                self._pending.clear()
        else:
            self.queue.join()
            self._cancel.set()
        for t in self._threads:
            t.join(timeout=timeout)
        self._threads.clear()
