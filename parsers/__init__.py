# Explicit re-exports for library users.
from .base import (
    Classification as Classification,
)
from .base import (
    LogLine as LogLine,
)
from .base import (
    NoMatchError as NoMatchError,
)
from .base import (
    ParseError as ParseError,
)
from .base import (
    Parser as Parser,
)
from .patterns import (
    PatternSet as PatternSet,
)
from .patterns import (
    compile_patterns as compile_patterns,
)
from .sshd import (
    SshdClassifier as SshdClassifier,
)
from .syslog import (
    SyslogParser as SyslogParser,
)

__all__ = [
    "Classification",
    "LogLine",
    "NoMatchError",
    "ParseError",
    "Parser",
    "PatternSet",
    "SshdClassifier",
    "SyslogParser",
    "compile_patterns",
]
