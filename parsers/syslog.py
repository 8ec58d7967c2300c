# parsers/syslog.py
from typing import Optional

from .base import LogLine, ParseError, Parser
from .patterns import PatternSet, compile_patterns


class SyslogParser(Parser):
    """Tokenizes `MONTH DAY HH:MM:SS HOST PROCESS[PID]: MESSAGE` lines."""

    def __init__(self, patterns: Optional[PatternSet] = None):
        self.patterns = patterns or compile_patterns()

    def parse_line(self, line: str) -> LogLine:
        raw = line.rstrip("\r\n")
        m = self.patterns.log_line.match(raw)
        if not m:
            raise ParseError("line did not match expected pattern")
        d = m.groupdict()
        return LogLine(
            raw=raw,
            month=d["month"],
            day=d["day"],
            time=d["time"],
            host=d["host"],
            process=d["process"],
            pid=d["pid"],
            message=d["msg"],
        )
