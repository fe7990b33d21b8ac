from __future__ import annotations

import traceback

from .outcome import PositionedFailure
from .wrapper import CompilationUnit


def _underlying(exc: BaseException) -> BaseException | None:
    """Return the exception `exc` was raised from or while handling.

    Example:
        ```python
        cause = _underlying(exc)
        ```
    """
    if exc.__cause__ is not None:
        return exc.__cause__
    if exc.__suppress_context__:
        return None
    return exc.__context__


def _snippet_line(exc: BaseException, unit: CompilationUnit) -> int | None:
    """Return the snippet line of the innermost frame of `exc` inside the snippet.

    Example:
        ```python
        line = _snippet_line(exc, unit)
        ```
    """
    frames = list(traceback.walk_tb(exc.__traceback__))
    for frame, lineno in reversed(frames):
        if frame.f_code.co_filename != unit.filename:
            continue
        line = unit.snippet_line(lineno)
        if line is not None:
            return line
    return None


def classify(exc: BaseException | None, unit: CompilationUnit) -> PositionedFailure | None:
    """Attribute a runtime failure to a line of the snippet, if possible.

    The exception's frames are searched innermost first for one executing
    the snippet part of `unit`. Without a match the search moves on to the
    underlying cause, and so on until the root of the chain. The first
    exception with a matching frame is reported with that frame's line;
    otherwise the root is reported without a line.

    Example:
        ```python
        failure = classify(exc, unit)
        if failure and failure.line:
            print(f"line {failure.line}: {failure.cause}")
        ```
    """
    if exc is None:
        return None
    seen: set[int] = set()
    current: BaseException | None = exc
    root = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        line = _snippet_line(current, unit)
        if line is not None:
            return PositionedFailure(cause=current, line=line)
        root = current
        current = _underlying(current)
    return PositionedFailure(cause=root, line=None)
