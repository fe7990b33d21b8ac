from __future__ import annotations

import contextlib
import io
import sys
import threading
from typing import Any, Iterator, TextIO

_install_lock = threading.Lock()
_active_captures = 0


class ThreadRoutedStream(io.TextIOBase):
    """Stand-in for `sys.stdout` that routes writes per thread.

    Threads with an active capture write into their own buffer; every other
    thread writes to the wrapped stream as if nothing had been replaced.

    Example:
        ```python
        sys.stdout = ThreadRoutedStream(sys.stdout)
        ```
    """

    def __init__(self, fallback: TextIO) -> None:
        """Wrap `fallback`, the stream used by non-capturing threads.

        Example:
            ```python
            router = ThreadRoutedStream(sys.__stdout__)
            ```
        """
        super().__init__()
        self.fallback = fallback
        self._local = threading.local()

    def _target(self) -> TextIO:
        """Return the stream the calling thread should write to.

        Example:
            ```python
            stream = router._target()
            ```
        """
        buffer = getattr(self._local, "buffer", None)
        return buffer if buffer is not None else self.fallback

    def route(self, buffer: io.StringIO | None) -> io.StringIO | None:
        """Route the calling thread's writes into `buffer`; return the previous one.

        Passing `None` sends the thread's writes back to the fallback stream.

        Example:
            ```python
            previous = router.route(io.StringIO())
            ```
        """
        previous = getattr(self._local, "buffer", None)
        self._local.buffer = buffer
        return previous

    def write(self, text: str) -> int:
        """Write `text` to the calling thread's target.

        Example:
            ```python
            router.write("hello\\n")
            ```
        """
        return self._target().write(text)

    def flush(self) -> None:
        """Flush the calling thread's target.

        Example:
            ```python
            router.flush()
            ```
        """
        self._target().flush()

    def writable(self) -> bool:
        """Report the stream as writable.

        Example:
            ```python
            assert router.writable()
            ```
        """
        return True

    def isatty(self) -> bool:
        """Report whether the calling thread's target is a terminal.

        Example:
            ```python
            router.isatty()
            ```
        """
        return self._target().isatty()

    @property
    def encoding(self) -> Any:
        """Return the fallback stream's encoding.

        Example:
            ```python
            enc = router.encoding
            ```
        """
        return getattr(self.fallback, "encoding", "utf-8")


def _install_router() -> ThreadRoutedStream:
    """Make sure `sys.stdout` is a router and return it.

    Example:
        ```python
        router = _install_router()
        ```
    """
    current = sys.stdout
    if isinstance(current, ThreadRoutedStream):
        return current
    router = ThreadRoutedStream(current)
    sys.stdout = router
    return router


@contextlib.contextmanager
def capture_stdout() -> Iterator[io.StringIO]:
    """Capture the calling thread's standard output into a fresh buffer.

    Only writes issued by the calling thread are captured; other threads
    keep writing to the host's stream. Threads started from inside the
    capture do not inherit it either, so their output reaches the host's
    stream, not the buffer. The original `sys.stdout` is put back
    once the last capture finishes, unless the host replaced it meanwhile.

    Example:
        ```python
        with capture_stdout() as buffer:
            print("hi")
        assert buffer.getvalue() == "hi\\n"
        ```
    """
    global _active_captures
    buffer = io.StringIO()
    with _install_lock:
        router = _install_router()
        _active_captures += 1
    previous = router.route(buffer)
    try:
        yield buffer
    finally:
        router.route(previous)
        with _install_lock:
            _active_captures -= 1
            if _active_captures == 0 and sys.stdout is router:
                sys.stdout = router.fallback
