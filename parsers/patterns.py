# parsers/patterns.py
import re
from dataclasses import dataclass

IPV4 = r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}"

# month day time host process[pid]: message
LOG_LINE = (
    r"^(?P<month>[A-Z][a-z]{2})\s+(?P<day>\d{1,2})\s+(?P<time>\d{2}:\d{2}:\d{2})"
    r"\s+(?P<host>[A-Za-z0-9.\-]+)\s+(?P<process>[\w\-]+)\[(?P<pid>\d+)\]:\s(?P<msg>.*)$"
)

FAIL_MSG_DISCONNECT = rf"^Disconnected from (?P<ip>{IPV4})\b"
FAIL_MSG_INVALID_USER = rf"^Invalid user (?P<username>.*?) from (?P<ip>{IPV4})\b"
FAIL_MSG_TOO_MANY_ATTEMPTS = (
    rf"^error: maximum authentication attempts exceeded for "
    rf"(?:invalid user )?(?P<username>\S+) from (?P<ip>{IPV4})\b"
)


@dataclass(frozen=True)
class PatternSet:
    """Compiled patterns shared by the line parser and the classifier."""

    log_line: re.Pattern
    failures: tuple[tuple[str, re.Pattern], ...]

    @property
    def failure_order(self) -> tuple[str, ...]:
        return tuple(kind for kind, _ in self.failures)


def compile_patterns() -> PatternSet:
    """Build the pattern set once at startup; callers pass it around explicitly."""
    return PatternSet(
        log_line=re.compile(LOG_LINE),
        failures=(
            ("disconnect", re.compile(FAIL_MSG_DISCONNECT)),
            ("invalid_user", re.compile(FAIL_MSG_INVALID_USER)),
            ("too_many_attempts", re.compile(FAIL_MSG_TOO_MANY_ATTEMPTS)),
        ),
    )
