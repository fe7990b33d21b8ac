from __future__ import annotations

import concurrent.futures
import ctypes
import logging
import threading
from typing import Callable, TypeVar

from ..outcome import WorkerCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

_set_async_exc = ctypes.pythonapi.PyThreadState_SetAsyncExc
_set_async_exc.argtypes = [ctypes.c_ulong, ctypes.py_object]
_set_async_exc.restype = ctypes.c_int


def force_stop(thread: threading.Thread) -> bool:
    """Raise `WorkerCancelled` asynchronously inside `thread`.

    The exception is delivered the next time the thread executes Python
    bytecode; a thread blocked inside a C call only sees it once the call
    returns. Returns whether the exception was scheduled.

    Example:
        ```python
        force_stop(worker)
        ```
    """
    ident = thread.ident
    if ident is None or not thread.is_alive():
        return False
    affected = _set_async_exc(ctypes.c_ulong(ident), ctypes.py_object(WorkerCancelled))
    if affected > 1:
        _set_async_exc(ctypes.c_ulong(ident), None)
        raise RuntimeError("PyThreadState_SetAsyncExc affected multiple threads")
    return affected == 1


def _run_into(future: concurrent.futures.Future[T], work: Callable[[], T]) -> None:
    """Run `work` and settle `future` with its result or exception.

    Example:
        ```python
        threading.Thread(target=_run_into, args=(future, work)).start()
        ```
    """
    if not future.set_running_or_notify_cancel():
        return
    try:
        future.set_result(work())
    except WorkerCancelled:
        logger.debug("Evaluation worker %s cancelled", threading.current_thread().name)
    except BaseException as exc:
        future.set_exception(exc)


def with_deadline(deadline_seconds: float, work: Callable[[], T], *, name: str = "snippet-eval") -> T | None:
    """Run `work` on a dedicated thread and wait at most `deadline_seconds`.

    Returns the work's result, re-raises its exception, or returns `None`
    when the deadline passes first. An expired worker is force-stopped and
    left to die on its own; it is a daemon thread, so it never blocks
    interpreter shutdown.

    Example:
        ```python
        result = with_deadline(2.0, lambda: pipeline(unit))
        if result is None:
            print("timed out")
        ```
    """
    future: concurrent.futures.Future[T] = concurrent.futures.Future()
    worker = threading.Thread(target=_run_into, args=(future, work), name=name, daemon=True)
    worker.start()
    try:
        return future.result(timeout=deadline_seconds)
    except concurrent.futures.TimeoutError:
        logger.warning("Worker %s exceeded %.3fs deadline", worker.name, deadline_seconds)
        return None
    finally:
        if worker.is_alive() and not future.done():
            if not force_stop(worker):
                logger.warning("Could not deliver cancellation to worker %s", worker.name)
