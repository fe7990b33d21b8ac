from __future__ import annotations

import logging
from typing import Any

from ..outcome import ResultTypeError
from ..security import SecurityGate
from ..wrapper import CompilationUnit
from .capture import capture_stdout
from .loader import UnitLoader

logger = logging.getLogger(__name__)


class ExecutionStage:
    """Load a compiled unit, invoke it, and capture what it prints.

    Example:
        ```python
        stage = ExecutionStage(loader, gate)
        value, output = stage.execute(unit)
        ```
    """

    def __init__(self, loader: UnitLoader, gate: SecurityGate) -> None:
        """Bind the stage to the engine's unit loader and security gate.

        Example:
            ```python
            stage = ExecutionStage(UnitLoader(target, importer), SecurityGate(enabled=True))
            ```
        """
        self.loader = loader
        self.gate = gate

    def execute(self, unit: CompilationUnit, result_type: type | None = None) -> tuple[Any, str]:
        """Run `unit` and return its value together with the captured output.

        Loading the unit module runs the prelude's top-level statements;
        instantiating and calling the unit runs the snippet. Both happen
        behind the security gate with standard output captured. Exceptions
        propagate to the caller.

        Example:
            ```python
            value, output = stage.execute(unit, result_type=int)
            ```
        """
        unit_builtins = self.gate.unit_builtins(self.loader.importer.import_module)
        with capture_stdout() as buffer:
            with self.gate.scoped():
                module = self.loader.load_unit(unit, unit_builtins)
                instance = getattr(module, unit.name)()
                value = instance()
        if result_type is not None and not isinstance(value, result_type):
            raise ResultTypeError(
                f"Snippet produced {type(value).__name__}, expected {result_type.__name__}"
            )
        logger.debug("Unit %s returned %s", unit.name, type(value).__name__)
        return value, buffer.getvalue()
