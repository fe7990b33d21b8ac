from __future__ import annotations

import logging
import threading

from .classify import classify
from .config import EngineConfig
from .diagnostics import DiagnosticCollector, Severity
from .execution.compile_stage import CompileStage
from .execution.guard import with_deadline
from .execution.loader import ClasspathImporter, UnitLoader
from .execution.run_stage import ExecutionStage
from .execution.target import CompileTarget, should_rotate
from .execution.toolchain import PythonToolchain, Toolchain
from .outcome import (
    CompileFailure,
    InternalFailure,
    Outcome,
    RuntimeFailure,
    Success,
    Timeout,
    WorkerCancelled,
)
from .security import SecurityGate
from .wrapper import CompilationUnit, wrap

logger = logging.getLogger(__name__)


def _pipeline(
    unit: CompilationUnit,
    compile_stage: CompileStage,
    execution_stage: ExecutionStage,
    result_type: type | None,
) -> Outcome:
    """Compile `unit`, run it when it compiled cleanly, and build the outcome.

    Example:
        ```python
        outcome = _pipeline(unit, compile_stage, execution_stage, None)
        ```
    """
    diagnostics = compile_stage.compile(unit)
    if Severity.ERROR in diagnostics:
        return CompileFailure(diagnostics=diagnostics)
    try:
        value, output = execution_stage.execute(unit, result_type)
    except WorkerCancelled:
        raise
    except BaseException as exc:
        return RuntimeFailure(diagnostics=diagnostics, failure=classify(exc, unit))
    return Success(diagnostics=diagnostics, value=value, captured_output=output)


class Evaluator:
    """Compile and run snippets under a wall-clock deadline.

    One evaluator owns one compile target, one diagnostic collector and one
    loader chain. Calls to `evaluate` on the same instance are serialized;
    use one evaluator per thread for parallel evaluation.

    Example:
        ```python
        evaluator = Evaluator(EngineConfig(timeout_seconds=2))
        outcome = evaluator.evaluate("", "1 + 1")
        assert isinstance(outcome, Success) and outcome.value == 2
        ```
    """

    def __init__(self, config: EngineConfig | None = None, *, toolchain: Toolchain | None = None) -> None:
        """Build the evaluator's long-lived state from `config`.

        Example:
            ```python
            evaluator = Evaluator(EngineConfig(classpath=["./lib"], security_enabled=False))
            ```
        """
        self.config = config or EngineConfig()
        self._toolchain = toolchain or PythonToolchain()
        self._options = self.config.compiler_options
        self._gate = SecurityGate(self.config.security_enabled, self.config.policy)
        self._importer = ClasspathImporter(self.config.classpath)
        self._lock = threading.Lock()
        self._target = CompileTarget()
        self._install_target(self._target)

    def _install_target(self, target: CompileTarget) -> None:
        """Wire fresh per-target state (collector, loader, stages) around `target`.

        Example:
            ```python
            self._install_target(CompileTarget())
            ```
        """
        self._target = target
        self._collector = DiagnosticCollector()
        self._compile_stage = CompileStage(
            self._toolchain,
            target,
            self._collector,
            self._gate,
            classpath=self.config.classpath_string,
            options=self._options,
        )
        self._execution_stage = ExecutionStage(UnitLoader(target, self._importer), self._gate)

    def _rotate(self) -> None:
        """Replace the compile target and everything bound to it.

        Example:
            ```python
            self._rotate()
            ```
        """
        old = self._target
        if old.tainted:
            logger.warning("Rotating compile target %s after an abandoned worker", old.target_id)
        else:
            logger.info(
                "Rotating compile target %s after %d compiles", old.target_id, old.units_compiled
            )
        old.clear()
        self._install_target(CompileTarget())

    @property
    def target(self) -> CompileTarget:
        """Return the compile target currently in use.

        Example:
            ```python
            names = evaluator.target.names()
            ```
        """
        return self._target

    def evaluate(self, prelude: str, code: str, result_type: type | None = None) -> Outcome:
        """Evaluate `code` after `prelude` and describe what happened.

        Never raises for snippet or engine problems: every failure is
        reported as one of the `Outcome` variants. When `result_type` is
        given, a value of another type is reported as a runtime failure.

        Example:
            ```python
            outcome = evaluator.evaluate("import math", "math.sqrt(16)", result_type=float)
            ```
        """
        with self._lock:
            try:
                if should_rotate(self._target, self.config.max_units_per_target):
                    self._rotate()
                unit = wrap(prelude, code)
                logger.debug("Evaluating %s", unit.name)
                compile_stage = self._compile_stage
                execution_stage = self._execution_stage
                outcome = with_deadline(
                    self.config.timeout_seconds,
                    lambda: _pipeline(unit, compile_stage, execution_stage, result_type),
                    name=f"snippet-eval-{unit.name}",
                )
                if outcome is None:
                    self._target.tainted = True
                    return Timeout()
                return outcome
            except BaseException as exc:
                logger.exception("Internal failure while evaluating snippet")
                return InternalFailure(cause=exc)


def evaluate(
    code: str,
    prelude: str = "",
    config: EngineConfig | None = None,
    result_type: type | None = None,
) -> Outcome:
    """Evaluate one snippet with a throwaway `Evaluator`.

    Example:
        ```python
        outcome = evaluate("print('hi')", config=EngineConfig(timeout_seconds=1))
        ```
    """
    return Evaluator(config).evaluate(prelude, code, result_type)
