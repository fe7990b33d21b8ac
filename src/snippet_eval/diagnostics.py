from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field


class Severity(enum.Enum):
    """Severity of a compiler diagnostic.

    Example:
        ```python
        Severity.ERROR in diagnostics
        ```
    """

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Position:
    """Character range inside the compiled unit source.

    `start`, `point` and `end` are 0-based offsets into the wrapped source;
    `line` is the 1-based line holding `point`.

    Example:
        ```python
        pos = Position(start=12, point=14, end=20, line=2)
        ```
    """

    start: int
    point: int
    end: int
    line: int


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """One message emitted by the toolchain.

    Example:
        ```python
        diag = Diagnostic("invalid syntax", Position(4, 4, 5, 1))
        ```
    """

    message: str
    position: Position | None = None


DiagnosticSet = dict[Severity, list[Diagnostic]]


@dataclass(frozen=True, slots=True)
class ReportedMessage:
    """Toolchain-native message before conversion into a `Diagnostic`.

    `level` uses `logging` levels; locations follow `SyntaxError` conventions
    (1-based lines, 1-based column offsets).

    Example:
        ```python
        msg = ReportedMessage(logging.ERROR, "invalid syntax", lineno=3, offset=5)
        ```
    """

    level: int
    message: str
    lineno: int | None = None
    offset: int | None = None
    end_lineno: int | None = None
    end_offset: int | None = None


@dataclass(slots=True)
class DiagnosticCollector:
    """Store of messages reported during one compile attempt.

    Example:
        ```python
        collector = DiagnosticCollector()
        collector.report(ReportedMessage(logging.WARNING, "unused"))
        ```
    """

    messages: list[ReportedMessage] = field(default_factory=list)

    def report(self, message: ReportedMessage) -> None:
        """Record one toolchain message.

        Example:
            ```python
            collector.report(ReportedMessage(logging.INFO, "note"))
            ```
        """
        self.messages.append(message)

    def reset(self) -> None:
        """Forget every recorded message.

        Example:
            ```python
            collector.reset()
            ```
        """
        self.messages.clear()

    def has_errors(self) -> bool:
        """Return whether an error-level message was recorded.

        Example:
            ```python
            if collector.has_errors():
                ...
            ```
        """
        return any(to_severity(m.level) is Severity.ERROR for m in self.messages)


def to_severity(level: int) -> Severity:
    """Map a `logging` level onto the diagnostic severity scale.

    Anything at ERROR or above is an error; WARNING up to ERROR is a warning;
    everything quieter is informational.

    Example:
        ```python
        assert to_severity(logging.WARNING) is Severity.WARNING
        ```
    """
    if level >= logging.ERROR:
        return Severity.ERROR
    if level >= logging.WARNING:
        return Severity.WARNING
    return Severity.INFO


def _line_starts(source: str) -> list[int]:
    """Return the offset at which each line of `source` begins.

    Example:
        ```python
        assert _line_starts("a\\nbc") == [0, 2]
        ```
    """
    starts = [0]
    for index, char in enumerate(source):
        if char == "\n":
            starts.append(index + 1)
    return starts


def _offset_of(starts: list[int], limit: int, lineno: int, column: int | None) -> int:
    """Return the character offset of a 1-based line and column.

    Example:
        ```python
        offset = _offset_of([0, 4], 9, 2, 3)  # 6
        ```
    """
    base = starts[min(max(lineno, 1), len(starts)) - 1]
    col = max((column or 1) - 1, 0)
    return min(base + col, limit)


def to_position(message: ReportedMessage, source: str) -> Position | None:
    """Convert a line/column location into a character range over `source`.

    Messages without a line number have no position. A missing column points
    at the start of the line; a missing end collapses the range onto `point`.

    Example:
        ```python
        pos = to_position(ReportedMessage(logging.ERROR, "x", lineno=1, offset=3), "a = (")
        ```
    """
    if message.lineno is None or message.lineno < 1:
        return None
    starts = _line_starts(source)
    line = min(message.lineno, len(starts))
    point = _offset_of(starts, len(source), line, message.offset)
    if message.end_lineno is not None and message.end_offset is not None:
        end = max(
            _offset_of(starts, len(source), message.end_lineno, message.end_offset), point
        )
    else:
        end = point
    return Position(start=point, point=point, end=end, line=line)


def group_by_severity(messages: list[ReportedMessage], source: str) -> DiagnosticSet:
    """Group reported messages by severity, preserving report order.

    Example:
        ```python
        diagnostics = group_by_severity(collector.messages, unit.source)
        errors = diagnostics.get(Severity.ERROR, [])
        ```
    """
    grouped: DiagnosticSet = {}
    for message in messages:
        severity = to_severity(message.level)
        grouped.setdefault(severity, []).append(
            Diagnostic(message=message.message, position=to_position(message, source))
        )
    return grouped

