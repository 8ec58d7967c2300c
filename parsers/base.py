# parsers/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from dateutil import parser as dtp

# A derived timestamp may sit this far past its reference before we assume
# it belongs to the previous year.
ROLLOVER_SLACK = timedelta(days=1)


class ParseError(ValueError):
    """Raised when a raw line does not have the fixed syslog shape."""


class NoMatchError(LookupError):
    """Raised when a message matches none of the failure patterns."""


@dataclass(frozen=True)
class LogLine:
    """One tokenized line: raw text plus the fixed syslog fields."""

    raw: str
    month: str
    day: str
    time: str
    host: str
    process: str
    pid: str
    message: str

    def timestamp(self, reference: Optional[datetime] = None) -> datetime:
        """
        Derive the line's datetime. The format carries no year, so the year
        is taken from `reference` (file mtime during a pass, else now).
        Stamps landing more than a day after the reference are pushed back
        one year, which keeps December lines read in January in December.
        """
        reference = reference or datetime.now()
        stamp = f"{self.month} {self.day} {self.time}"
        try:
            try:
                ts = dtp.parse(stamp, default=datetime(reference.year, 1, 1))
            except ValueError:
                # Feb 29 outside a leap year can only be last year's
                ts = dtp.parse(stamp, default=datetime(reference.year - 1, 1, 1))
            if ts - reference > ROLLOVER_SLACK:
                ts = ts.replace(year=ts.year - 1)
        except (ValueError, OverflowError) as exc:
            raise ParseError(f"invalid timestamp {stamp!r}: {exc}") from exc
        return ts


@dataclass(frozen=True)
class Classification:
    """Fields pulled out of a failure message."""

    kind: str
    ip: str
    username: Optional[str] = None


class Parser(ABC):
    @abstractmethod
    def parse_line(self, line: str) -> LogLine:
        """Return the tokenized line or raise ParseError."""
        ...
