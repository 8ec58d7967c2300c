from datetime import datetime

import pytest

from ingestor.checkpoint import CheckpointTracker, PassState
from storage.models import FileCheckpoint

D1 = datetime(2026, 3, 14, 10, 0, 0)
D2 = datetime(2026, 3, 21, 6, 25, 1)


def feed_all(tracker, lines):
    return [line for line in lines if tracker.feed(line)]


def test_no_checkpoint_is_new_and_persists_epoch(backend):
    tracker = CheckpointTracker(backend, "auth")

    assert tracker.bootstrap(D1) is PassState.NEW
    assert tracker.state is PassState.STREAMING

    saved = backend.load_checkpoint("auth")
    assert saved.epoch_date == D1
    assert saved.last_line is None


def test_new_streams_everything_and_commits_last_line(backend):
    tracker = CheckpointTracker(backend, "auth")
    tracker.bootstrap(D1)

    assert feed_all(tracker, ["a", "b", "c"]) == ["a", "b", "c"]
    assert tracker.commit() is True

    saved = backend.load_checkpoint("auth")
    assert (saved.last_line, saved.last_line_occurrence) == ("c", 1)


def test_different_epoch_means_rotation(backend):
    backend.save_checkpoint(FileCheckpoint("auth", D1, last_line="b"))
    tracker = CheckpointTracker(backend, "auth")

    assert tracker.bootstrap(D2) is PassState.NEW
    assert feed_all(tracker, ["x", "b", "y"]) == ["x", "b", "y"]
    assert backend.load_checkpoint("auth").epoch_date == D2


def test_resume_skips_through_checkpoint_line(backend):
    backend.save_checkpoint(FileCheckpoint("auth", D1, last_line="b"))
    tracker = CheckpointTracker(backend, "auth")

    assert tracker.bootstrap(D1) is PassState.RESUME
    assert tracker.state is PassState.SEEKING
    assert feed_all(tracker, ["a", "b", "c", "d"]) == ["c", "d"]
    assert tracker.state is PassState.STREAMING


def test_resume_at_end_of_file_stays_seeking(backend):
    backend.save_checkpoint(FileCheckpoint("auth", D1, last_line="c"))
    tracker = CheckpointTracker(backend, "auth")
    tracker.bootstrap(D1)

    assert feed_all(tracker, ["a", "b", "c"]) == []
    assert tracker.state is PassState.SEEKING
    assert tracker.target_found
    assert tracker.commit() is False


def test_missing_target_never_streams(backend):
    backend.save_checkpoint(FileCheckpoint("auth", D1, last_line="gone"))
    tracker = CheckpointTracker(backend, "auth")
    tracker.bootstrap(D1)

    assert feed_all(tracker, ["a", "b"]) == []
    assert not tracker.target_found
    assert backend.load_checkpoint("auth").last_line == "gone"


def test_duplicate_lines_resume_at_same_occurrence(backend):
    backend.save_checkpoint(FileCheckpoint("auth", D1, last_line="dup", last_line_occurrence=2))
    tracker = CheckpointTracker(backend, "auth")
    tracker.bootstrap(D1)

    assert feed_all(tracker, ["dup", "x", "dup", "y"]) == ["y"]


def test_commit_records_occurrence_of_duplicate_last_line(backend):
    tracker = CheckpointTracker(backend, "auth")
    tracker.bootstrap(D1)
    feed_all(tracker, ["dup", "x", "dup"])
    tracker.commit()

    saved = backend.load_checkpoint("auth")
    assert (saved.last_line, saved.last_line_occurrence) == ("dup", 2)


def test_epoch_without_committed_line_streams_from_start(backend):
    backend.save_checkpoint(FileCheckpoint("auth", D1))
    tracker = CheckpointTracker(backend, "auth")

    assert tracker.bootstrap(D1) is PassState.RESUME
    assert feed_all(tracker, ["a", "b"]) == ["a", "b"]


def test_feed_before_bootstrap_is_an_error(backend):
    with pytest.raises(RuntimeError):
        CheckpointTracker(backend, "auth").feed("a")
