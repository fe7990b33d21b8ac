from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Generic, TypeVar

from .diagnostics import Diagnostic, DiagnosticSet, Severity

T = TypeVar("T")


class ResultTypeError(TypeError):
    """Raised when a snippet's value is not an instance of the requested type."""


class PolicyViolation(PermissionError):
    """Raised when guarded code performs an operation the security policy forbids."""


class WorkerCancelled(BaseException):
    """Injected into an evaluation worker whose deadline has expired."""


@dataclass(frozen=True, slots=True)
class PositionedFailure:
    """A runtime error with the snippet line that raised it, when known.

    `line` is 1-based and counted from the first line of the snippet.

    Example:
        ```python
        failure = PositionedFailure(cause=ZeroDivisionError("division by zero"), line=3)
        ```
    """

    cause: BaseException
    line: int | None = None


class Outcome:
    """Base of the outcome variants returned by `Evaluator.evaluate`.

    Example:
        ```python
        if isinstance(outcome, Success):
            print(outcome.value)
        ```
    """

    __slots__ = ()
    ok: ClassVar[bool] = False
    kind: ClassVar[str] = "outcome"


@dataclass(frozen=True, slots=True)
class Timeout(Outcome):
    """The deadline expired before compile and execute finished.

    Example:
        ```python
        outcome = Timeout()
        ```
    """

    kind: ClassVar[str] = "timeout"


@dataclass(frozen=True, slots=True)
class Success(Outcome, Generic[T]):
    """The snippet compiled and ran to completion.

    Example:
        ```python
        outcome = Success(diagnostics={}, value=2, captured_output="")
        ```
    """

    ok: ClassVar[bool] = True
    kind: ClassVar[str] = "success"

    diagnostics: DiagnosticSet = field(default_factory=dict)
    value: T | None = None
    captured_output: str = ""


@dataclass(frozen=True, slots=True)
class RuntimeFailure(Outcome):
    """The snippet compiled but raised while loading or running.

    Example:
        ```python
        outcome = RuntimeFailure(diagnostics={}, failure=PositionedFailure(ValueError(), 1))
        ```
    """

    kind: ClassVar[str] = "runtime_failure"

    diagnostics: DiagnosticSet = field(default_factory=dict)
    failure: PositionedFailure | None = None


@dataclass(frozen=True, slots=True)
class CompileFailure(Outcome):
    """The toolchain reported at least one error; nothing was executed.

    Example:
        ```python
        errors = outcome.diagnostics[Severity.ERROR]
        ```
    """

    kind: ClassVar[str] = "compile_failure"

    diagnostics: DiagnosticSet = field(default_factory=dict)

    @property
    def errors(self) -> list[Diagnostic]:
        """Return the error-severity diagnostics.

        Example:
            ```python
            first = outcome.errors[0].message
            ```
        """
        return list(self.diagnostics.get(Severity.ERROR, []))


@dataclass(frozen=True, slots=True)
class InternalFailure(Outcome):
    """The engine itself failed; the cause is not attributable to the snippet.

    Example:
        ```python
        outcome = InternalFailure(cause=OSError("disk full"))
        ```
    """

    kind: ClassVar[str] = "internal_failure"

    cause: BaseException
