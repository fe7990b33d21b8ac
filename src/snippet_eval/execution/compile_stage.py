from __future__ import annotations

import logging

from ..config import CompilerOptions
from ..diagnostics import DiagnosticCollector, DiagnosticSet, group_by_severity
from ..security import SecurityGate
from ..wrapper import CompilationUnit
from .target import CompileTarget
from .toolchain import Toolchain

logger = logging.getLogger(__name__)


class CompileStage:
    """Compile wrapped units into the engine's shared target.

    The stage owns no locking: the collector and target are reset at the
    start of every `compile` call, so callers must not run two compiles on
    the same stage at once.

    Example:
        ```python
        stage = CompileStage(PythonToolchain(), target, collector, gate, classpath="", options=CompilerOptions())
        diagnostics = stage.compile(unit)
        ```
    """

    def __init__(
        self,
        toolchain: Toolchain,
        target: CompileTarget,
        collector: DiagnosticCollector,
        gate: SecurityGate,
        *,
        classpath: str,
        options: CompilerOptions,
    ) -> None:
        """Capture the toolchain, shared state and fixed compiler settings.

        Example:
            ```python
            stage = CompileStage(toolchain, CompileTarget(), DiagnosticCollector(), gate, classpath="/lib", options=options)
            ```
        """
        self.toolchain = toolchain
        self.target = target
        self.collector = collector
        self.gate = gate
        self.classpath = classpath
        self.options = options

    def reset(self) -> None:
        """Clear the diagnostic collector and the compile target.

        Example:
            ```python
            stage.reset()
            ```
        """
        self.target.clear()
        self.collector.reset()

    def compile(self, unit: CompilationUnit) -> DiagnosticSet:
        """Compile `unit` and return its diagnostics grouped by severity.

        On success the code object is stored in the target under the unit's
        name. Messages are converted into `Diagnostic` values positioned
        over the unit's source text.

        Example:
            ```python
            diagnostics = stage.compile(wrap("", "1 + 1"))
            assert Severity.ERROR not in diagnostics
            ```
        """
        self.reset()
        with self.gate.scoped():
            code = self.toolchain.compile(
                unit.source,
                unit.filename,
                classpath=self.classpath,
                options=self.options,
                reporter=self.collector,
            )
        self.target.units_compiled += 1
        if code is not None:
            self.target.store(unit, code)
        diagnostics = group_by_severity(self.collector.messages, unit.source)
        logger.debug(
            "Compiled %s: %s",
            unit.name,
            {severity.value: len(items) for severity, items in diagnostics.items()} or "clean",
        )
        return diagnostics
