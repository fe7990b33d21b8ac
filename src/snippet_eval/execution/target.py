from __future__ import annotations

import linecache
import uuid
from dataclasses import dataclass, field
from types import CodeType

from ..wrapper import CompilationUnit


@dataclass(slots=True)
class _Artifact:
    """Compiled code object plus the source it came from.

    Example:
        ```python
        artifact = _Artifact(code=code, unit=unit)
        ```
    """

    code: CodeType
    unit: CompilationUnit


@dataclass(slots=True)
class CompileTarget:
    """In-memory store receiving compiled units for one engine.

    Stored units are also registered with `linecache` under their synthetic
    filename so tracebacks can show snippet source lines; clearing the
    target drops those entries again.

    Example:
        ```python
        target = CompileTarget()
        target.store(unit, code)
        ```
    """

    target_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    units_compiled: int = 0
    tainted: bool = False
    _artifacts: dict[str, _Artifact] = field(default_factory=dict)

    def store(self, unit: CompilationUnit, code: CodeType) -> None:
        """Store a compiled unit under its unique name.

        Example:
            ```python
            target.store(unit, code)
            ```
        """
        self._artifacts[unit.name] = _Artifact(code=code, unit=unit)
        linecache.cache[unit.filename] = (
            len(unit.source),
            None,
            unit.source.splitlines(keepends=True),
            unit.filename,
        )

    def code_for(self, name: str) -> CodeType:
        """Return the code object stored under `name`.

        Example:
            ```python
            code = target.code_for(unit.name)
            ```
        """
        try:
            return self._artifacts[name].code
        except KeyError:
            raise LookupError(f"No compiled unit named {name!r} in target {self.target_id}") from None

    def names(self) -> list[str]:
        """Return the names of the units currently stored.

        Example:
            ```python
            assert target.names() == [unit.name]
            ```
        """
        return list(self._artifacts)

    def clear(self) -> None:
        """Drop every stored unit and its `linecache` entry.

        Example:
            ```python
            target.clear()
            ```
        """
        for artifact in self._artifacts.values():
            linecache.cache.pop(artifact.unit.filename, None)
        self._artifacts.clear()


def should_rotate(target: CompileTarget, max_units: int) -> bool:
    """Decide whether an engine should replace its compile target.

    A target is rotated once a worker was abandoned while using it, or after
    it has received `max_units` compiles.

    Example:
        ```python
        rotate = should_rotate(target, max_units=500)
        ```
    """
    if target.tainted:
        return True
    return target.units_compiled >= max_units
