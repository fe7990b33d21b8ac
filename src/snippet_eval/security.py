from __future__ import annotations

import builtins
import contextlib
import logging
import os
import sys
import threading
from typing import Any, Callable, Iterator, TypeVar

from .outcome import PolicyViolation
from .policy import SecurityPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

_guarded = threading.local()
_hook_lock = threading.Lock()
_hook_installed = False
_WRITE_FLAGS = os.O_WRONLY | os.O_RDWR | os.O_CREAT | os.O_APPEND | os.O_TRUNC


def _active_policy() -> SecurityPolicy | None:
    """Return the policy guarding the current thread, if any.

    Example:
        ```python
        policy = _active_policy()
        ```
    """
    stack: list[SecurityPolicy] | None = getattr(_guarded, "stack", None)
    return stack[-1] if stack else None


def _audit_hook(event: str, args: tuple[Any, ...]) -> None:
    """Reject audit events blocked by the policy guarding this thread.

    Unguarded threads pass through untouched.

    Example:
        ```python
        sys.addaudithook(_audit_hook)
        ```
    """
    policy = _active_policy()
    if policy is None:
        return
    if event == "open" and len(args) > 1 and policy.blocks_event("open:write"):
        flags = args[2] if len(args) > 2 else None
        if _is_write_mode(args[1], flags):
            raise PolicyViolation(f"Writing files is blocked by policy: {args[0]!r}")
    if policy.blocks_event(event):
        raise PolicyViolation(f"Operation '{event}' is blocked by policy")


def _is_write_mode(mode: Any, flags: Any = None) -> bool:
    """Return whether an `open` audit event requests writing.

    `os.open` reports no mode string, only its `flags`.

    Example:
        ```python
        assert _is_write_mode("w")
        assert _is_write_mode(None, os.O_WRONLY | os.O_CREAT)
        ```
    """
    if isinstance(mode, str):
        return any(flag in mode for flag in "wax+")
    if isinstance(flags, int):
        return bool(flags & _WRITE_FLAGS)
    return False


def _ensure_audit_hook() -> None:
    """Install the process-wide audit hook once.

    Audit hooks cannot be removed, so the hook stays installed and consults
    the per-thread guard state instead.

    Example:
        ```python
        _ensure_audit_hook()
        ```
    """
    global _hook_installed
    with _hook_lock:
        if _hook_installed:
            return
        sys.addaudithook(_audit_hook)
        _hook_installed = True
        logger.debug("Installed snippet-eval audit hook")


def safe_import_factory(
    policy: SecurityPolicy,
    importer: Callable[..., Any],
) -> Callable[..., Any]:
    """Wrap an `__import__`-compatible callable with the policy's import rules.

    Example:
        ```python
        safe_import = safe_import_factory(SecurityPolicy(blocked_imports=["os"]), builtins.__import__)
        ```
    """
    allowed_imports = set(policy.allowed_imports)
    blocked_imports = set(policy.blocked_imports)

    def _safe_import(
        name: str,
        globals: dict[str, Any] | None = None,
        locals: dict[str, Any] | None = None,
        fromlist: Any = (),
        level: int = 0,
    ) -> Any:
        """Import `name` if the policy permits it.

        Example:
            ```python
            math = _safe_import("math")
            ```
        """
        if name == "importlib" or name.startswith("importlib."):
            raise ImportError("Import 'importlib' is blocked by policy")

        root = name.split(".")[0]
        if level == 0:
            if policy.mode == "allow":
                if root not in allowed_imports:
                    raise ImportError(f"Import '{name}' is not allowed by policy")
            elif root in blocked_imports:
                raise ImportError(f"Import '{name}' is blocked by policy")
        return importer(name, globals, locals, fromlist, level)

    return _safe_import


def build_builtins(
    policy: SecurityPolicy | None,
    importer: Callable[..., Any],
) -> dict[str, Any]:
    """Build the builtins namespace handed to a unit module.

    Without a policy the full builtins are exposed, with `__import__`
    routed through `importer`. With a policy, builtins are filtered by its
    allow/restrict rules and imports are checked first.

    Example:
        ```python
        namespace = {"__builtins__": build_builtins(policy, classpath_importer.import_module)}
        ```
    """
    source = vars(builtins)
    if policy is None:
        namespace = dict(source)
        namespace["__import__"] = importer
        return namespace

    allowed_builtins = set(policy.allowed_builtins)
    blocked_builtins = set(policy.blocked_builtins)
    safe: dict[str, Any] = {}
    for name, value in source.items():
        if policy.mode == "allow":
            if name not in allowed_builtins and not name.startswith("__"):
                continue
        elif name in blocked_builtins:
            continue
        safe[name] = value

    safe["__import__"] = safe_import_factory(policy, importer)
    return safe


class SecurityGate:
    """Scoped switch for the restrictive execution policy.

    While a thread is inside `scoped()` of an enabled gate, the process audit
    hook enforces the gate's policy for that thread only. Leaving the scope
    always lifts the policy again, whether the body returned, raised, or was
    cancelled.

    Example:
        ```python
        gate = SecurityGate(enabled=True, policy=SecurityPolicy())
        with gate.scoped():
            run_untrusted()
        ```
    """

    def __init__(self, enabled: bool, policy: SecurityPolicy | None = None) -> None:
        """Create a gate; nothing is installed until a scope is entered.

        Example:
            ```python
            gate = SecurityGate(enabled=False)
            ```
        """
        self.enabled = enabled
        self.policy = policy or SecurityPolicy()

    @contextlib.contextmanager
    def scoped(self) -> Iterator[None]:
        """Guard the current thread for the duration of the block.

        Example:
            ```python
            with gate.scoped():
                code = compile(source, filename, "exec")
            ```
        """
        if not self.enabled:
            yield
            return
        _ensure_audit_hook()
        stack: list[SecurityPolicy] | None = getattr(_guarded, "stack", None)
        if stack is None:
            stack = []
            _guarded.stack = stack
        stack.append(self.policy)
        try:
            yield
        finally:
            stack.pop()

    def run(self, body: Callable[[], T]) -> T:
        """Run `body` inside `scoped()` and return its result.

        Example:
            ```python
            value = gate.run(lambda: instance())
            ```
        """
        with self.scoped():
            return body()

    def unit_builtins(self, importer: Callable[..., Any]) -> dict[str, Any]:
        """Return the builtins namespace for units run behind this gate.

        Example:
            ```python
            namespace = gate.unit_builtins(importer.import_module)
            ```
        """
        return build_builtins(self.policy if self.enabled else None, importer)
