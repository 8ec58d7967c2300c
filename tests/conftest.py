import os
from datetime import datetime
from pathlib import Path

import pytest

from storage.base import AttemptSink
from storage.sqlite_backend import SQLiteBackend

# mtime used for log fixtures so the derived year is fixed
FIXED_MTIME = datetime(2026, 6, 1, 12, 0, 0)


class ListSink(AttemptSink):
    def __init__(self):
        self.attempts = []

    def save_attempt(self, attempt):
        self.attempts.append(attempt)


def write_log(path: Path, lines, mtime: datetime = FIXED_MTIME, mode: str = "w") -> Path:
    with path.open(mode, encoding="utf-8") as f:
        for line in lines:
            f.write(line + "\n")
    ts = mtime.timestamp()
    os.utime(path, (ts, ts))
    return path


@pytest.fixture
def backend(tmp_path):
    b = SQLiteBackend(db_path=str(tmp_path / "ssheat.db"))
    b.connect()
    yield b
    b.close()


@pytest.fixture
def sink():
    return ListSink()
