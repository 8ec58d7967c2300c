import logging
from typing import Optional

from storage.base import AttemptSink
from storage.models import AuthAttempt

from .enrichment import GeoEnricher

logger = logging.getLogger(__name__)


class EventEmitter:
    """Persists an attempt, then queues a best-effort geo lookup for its IP."""

    def __init__(self, sink: AttemptSink, enricher: Optional[GeoEnricher] = None):
        self.sink = sink
        self.enricher = enricher
        self.emitted = 0

    def emit(self, attempt: AuthAttempt) -> None:
        # blocks the pass; failures propagate so the checkpoint is not advanced
        self.sink.save_attempt(attempt)
        self.emitted += 1
        logger.debug("Stored attempt ip=%s user=%s host=%s", attempt.ip, attempt.username, attempt.host)
        if self.enricher is not None:
            self.enricher.submit(attempt.ip)
