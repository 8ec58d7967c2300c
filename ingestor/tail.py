import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from parsers.base import NoMatchError, ParseError
from parsers.patterns import PatternSet, compile_patterns
from parsers.sshd import SshdClassifier
from parsers.syslog import SyslogParser
from storage.base import CheckpointStore
from storage.models import AuthAttempt

from .checkpoint import CheckpointTracker, PassState
from .emitter import EventEmitter

logger = logging.getLogger(__name__)


@dataclass
class PassResult:
    path: str
    mode: Optional[PassState] = None
    state: PassState = PassState.BOOTSTRAP
    lines_read: int = 0
    lines_skipped: int = 0
    lines_streamed: int = 0
    attempts: int = 0


class TailDriver:
    """
    Runs one pass over the log file: parse, checkpoint, classify, emit.

    Every pass reads the file from the start. The checkpoint's last-line
    match is what keeps already-seen lines from being emitted again.
    """

    def __init__(
        self,
        store: CheckpointStore,
        emitter: EventEmitter,
        patterns: Optional[PatternSet] = None,
        file_id: Optional[str] = None,
    ):
        patterns = patterns or compile_patterns()
        self.store = store
        self.emitter = emitter
        self.parser = SyslogParser(patterns)
        self.classifier = SshdClassifier(patterns)
        self.file_id = file_id

    def run_pass(self, path) -> PassResult:
        path = Path(path)
        result = PassResult(path=str(path))
        try:
            reference = datetime.fromtimestamp(path.stat().st_mtime)
        except FileNotFoundError:
            logger.warning("Log file %s does not exist; skipping pass", path)
            return result

        tracker = CheckpointTracker(self.store, self.file_id or str(path.resolve()))
        with path.open("r", encoding="utf-8", errors="replace") as f:
            for line in f:
                if not line.endswith("\n"):
                    # writer is mid-line; the next pass sees it whole
                    logger.debug("Deferring unterminated last line of %s", path.name)
                    break
                result.lines_read += 1
                try:
                    log_line = self.parser.parse_line(line)
                    timestamp = log_line.timestamp(reference)
                except ParseError as exc:
                    result.lines_skipped += 1
                    logger.debug("Skipping line %d of %s: %s", result.lines_read, path.name, exc)
                    continue

                if tracker.state is PassState.BOOTSTRAP:
                    tracker.bootstrap(timestamp)
                if not tracker.feed(log_line.raw):
                    continue

                try:
                    match = self.classifier.classify(log_line.message)
                except NoMatchError:
                    continue

                self.emitter.emit(
                    AuthAttempt(
                        ip=match.ip,
                        username=match.username,
                        host=log_line.host,
                        timestamp=timestamp,
                        source_path=str(path),
                    )
                )
                result.attempts += 1

        tracker.commit()
        if tracker.mode is PassState.RESUME and not tracker.target_found:
            logger.warning("Checkpoint line not found in %s; nothing streamed", path)

        result.mode = tracker.mode
        result.state = tracker.state
        result.lines_streamed = tracker.lines_streamed
        logger.info(
            "Pass over %s: mode=%s read=%d streamed=%d attempts=%d",
            path.name,
            result.mode.value if result.mode else None,
            result.lines_read,
            result.lines_streamed,
            result.attempts,
        )
        return result
