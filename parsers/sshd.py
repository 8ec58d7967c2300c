# parsers/sshd.py
import logging
from typing import Optional

from .base import Classification, NoMatchError
from .patterns import PatternSet, compile_patterns

logger = logging.getLogger(__name__)


class SshdClassifier:
    """
    Matches an sshd message against the failure patterns.

    Patterns are tried in `PatternSet.failures` order and the first match
    wins. Anything else raises NoMatchError, which callers should read as
    "not an attack line" rather than a failure.
    """

    def __init__(self, patterns: Optional[PatternSet] = None):
        self.patterns = patterns or compile_patterns()

    def classify(self, message: str) -> Classification:
        for kind, pattern in self.patterns.failures:
            m = pattern.search(message)
            if not m:
                continue
            d = m.groupdict()
            username = d.get("username") or None
            logger.debug("%s: %s", kind, message)
            return Classification(kind=kind, ip=d["ip"], username=username)
        raise NoMatchError("line did not match any pattern")
