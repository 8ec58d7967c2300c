"""
Checkpoint state machine for one pass over a watched file.

A pass starts in BOOTSTRAP. The first parseable line decides between NEW
(no checkpoint, or the first line's timestamp differs from the stored epoch,
i.e. the file was rotated) and RESUME (same file, grown or unchanged).

    BOOTSTRAP -> NEW -> STREAMING
    BOOTSTRAP -> RESUME -> SEEKING -> STREAMING

While SEEKING, lines are dropped until the stored last line is found at the
stored occurrence. Lines after it are streamed. The running last line is
written back once, by commit(), at the end of the pass.
"""

import logging
from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Optional

from storage.base import CheckpointStore
from storage.models import FileCheckpoint

logger = logging.getLogger(__name__)


class PassState(str, Enum):
    BOOTSTRAP = "bootstrap"
    NEW = "new"
    RESUME = "resume"
    SEEKING = "seeking"
    STREAMING = "streaming"


class CheckpointTracker:
    def __init__(self, store: CheckpointStore, file_id: str):
        self.store = store
        self.file_id = file_id
        self.state = PassState.BOOTSTRAP
        self.mode: Optional[PassState] = None
        self.checkpoint: Optional[FileCheckpoint] = None
        self.lines_streamed = 0

        self._seen: Counter = Counter()
        self._target: Optional[str] = None
        self._target_occurrence = 1
        self._target_found = False
        self._last_line: Optional[str] = None
        self._last_occurrence = 1

    def bootstrap(self, first_timestamp: datetime) -> PassState:
        """Load the checkpoint and pick NEW or RESUME from the first line's timestamp."""
        if self.state is not PassState.BOOTSTRAP:
            raise RuntimeError("tracker already bootstrapped")

        previous = self.store.load_checkpoint(self.file_id)
        if previous is None or previous.epoch_date != first_timestamp:
            self.mode = PassState.NEW
            self.checkpoint = FileCheckpoint(file_id=self.file_id, epoch_date=first_timestamp)
            self.store.save_checkpoint(self.checkpoint)
            self._target_found = True
            logger.info(
                "%s is new (epoch %s, previous %s)",
                self.file_id,
                first_timestamp,
                previous.epoch_date if previous else None,
            )
        else:
            self.mode = PassState.RESUME
            self.checkpoint = previous
            self._target = previous.last_line
            self._target_occurrence = previous.last_line_occurrence
            # epoch persisted by an earlier pass that never committed a line
            self._target_found = previous.last_line is None
            logger.debug("%s resumes after %r (#%d)", self.file_id, self._target, self._target_occurrence)

        self.state = PassState.STREAMING if self.mode is PassState.NEW else PassState.SEEKING
        return self.mode

    def feed(self, raw: str) -> bool:
        """Account for one parseable line. Returns True if it should be streamed."""
        if self.state is PassState.BOOTSTRAP:
            raise RuntimeError("feed() before bootstrap()")

        self._seen[raw] += 1
        if not self._target_found:
            if raw == self._target and self._seen[raw] == self._target_occurrence:
                logger.debug("found checkpoint line in %s", self.file_id)
                self._target_found = True
            return False

        self.state = PassState.STREAMING
        self._last_line = raw
        self._last_occurrence = self._seen[raw]
        self.lines_streamed += 1
        return True

    @property
    def target_found(self) -> bool:
        return self._target_found

    def commit(self) -> bool:
        """Persist the last streamed line. No-op if nothing was streamed."""
        if self.checkpoint is None or self.lines_streamed == 0:
            return False
        self.checkpoint.last_line = self._last_line
        self.checkpoint.last_line_occurrence = self._last_occurrence
        self.store.save_checkpoint(self.checkpoint)
        return True
