from .config import EngineConfig
from .diagnostics import Diagnostic, Position, Severity
from .evaluator import Evaluator, evaluate
from .outcome import (
    CompileFailure,
    InternalFailure,
    Outcome,
    PolicyViolation,
    PositionedFailure,
    ResultTypeError,
    RuntimeFailure,
    Success,
    Timeout,
)
from .policy import SecurityPolicy

__all__ = [
    "CompileFailure",
    "Diagnostic",
    "EngineConfig",
    "Evaluator",
    "InternalFailure",
    "Outcome",
    "PolicyViolation",
    "Position",
    "PositionedFailure",
    "ResultTypeError",
    "RuntimeFailure",
    "SecurityPolicy",
    "Severity",
    "Success",
    "Timeout",
    "evaluate",
]
