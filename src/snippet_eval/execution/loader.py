from __future__ import annotations

import builtins
import importlib.abc
import importlib.machinery
import importlib.util
import logging
import threading
from types import ModuleType
from typing import Any

from ..wrapper import CompilationUnit
from .target import CompileTarget

logger = logging.getLogger(__name__)


class ClasspathImporter:
    """Import modules from an engine's classpath before the host's path.

    Modules found on the classpath are loaded once per importer and cached
    privately; they are never added to `sys.modules`, so two engines with
    different classpaths do not see each other's modules. Names not found on
    the classpath fall through to the host import system.

    Example:
        ```python
        importer = ClasspathImporter(["/opt/snippets/lib"])
        helpers = importer.import_module("helpers")
        ```
    """

    def __init__(self, entries: tuple[str, ...] | list[str]) -> None:
        """Create an importer searching `entries` in order.

        Example:
            ```python
            importer = ClasspathImporter(config.classpath)
            ```
        """
        self.entries = list(entries)
        self._modules: dict[str, ModuleType] = {}
        self._lock = threading.RLock()

    def owns(self, name: str) -> bool:
        """Return whether a top-level module name resolves on the classpath.

        Example:
            ```python
            if importer.owns("helpers"):
                ...
            ```
        """
        root = name.partition(".")[0]
        if root in self._modules:
            return True
        if not self.entries:
            return False
        return importlib.machinery.PathFinder.find_spec(root, self.entries) is not None

    def import_module(
        self,
        name: str,
        globals: dict[str, Any] | None = None,
        locals: dict[str, Any] | None = None,
        fromlist: Any = (),
        level: int = 0,
    ) -> ModuleType:
        """`__import__`-compatible entry point used as a unit's import hook.

        Example:
            ```python
            mod = importer.import_module("helpers.text", fromlist=("slugify",))
            ```
        """
        absolute = name
        if level > 0:
            package = (globals or {}).get("__package__") or ""
            absolute = importlib.util.resolve_name("." * level + name, package)
        if not self.owns(absolute):
            return builtins.__import__(name, globals, locals, fromlist, level)

        with self._lock:
            module = self._load(absolute)
            if fromlist:
                for attr in fromlist:
                    if attr == "*" or hasattr(module, attr):
                        continue
                    if hasattr(module, "__path__"):
                        self._load(f"{absolute}.{attr}")
                return module
            if level > 0:
                return module
            return self._modules[absolute.partition(".")[0]]

    def _load(self, fullname: str) -> ModuleType:
        """Load `fullname` and its parent packages from the classpath.

        Example:
            ```python
            module = importer._load("helpers.text")
            ```
        """
        cached = self._modules.get(fullname)
        if cached is not None:
            return cached
        parent_name, _, child = fullname.rpartition(".")
        if parent_name:
            parent = self._load(parent_name)
            # the parent's own imports may already have loaded us
            cached = self._modules.get(fullname)
            if cached is not None:
                return cached
            search = list(getattr(parent, "__path__", []))
        else:
            parent = None
            search = self.entries
        spec = importlib.machinery.PathFinder.find_spec(fullname, search)
        if spec is None or spec.loader is None:
            raise ModuleNotFoundError(f"No module named {fullname!r} on classpath", name=fullname)
        module = importlib.util.module_from_spec(spec)
        module.__dict__["__builtins__"] = {**vars(builtins), "__import__": self.import_module}
        self._modules[fullname] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            del self._modules[fullname]
            raise
        if parent is not None:
            setattr(parent, child, module)
        logger.debug("Loaded %s from classpath", fullname)
        return module


class UnitLoader(importlib.abc.Loader):
    """Loader materializing compiled units from one compile target.

    Unit modules resolve imports through the engine's `ClasspathImporter`
    and receive the builtins chosen by the security gate.

    Example:
        ```python
        loader = UnitLoader(target, importer)
        module = loader.load_unit(unit, builtins_namespace)
        ```
    """

    def __init__(self, target: CompileTarget, importer: ClasspathImporter) -> None:
        """Bind the loader to a target and a classpath importer.

        Example:
            ```python
            loader = UnitLoader(CompileTarget(), ClasspathImporter([]))
            ```
        """
        self.target = target
        self.importer = importer

    def create_module(self, spec: importlib.machinery.ModuleSpec) -> ModuleType | None:
        """Use the default module creation.

        Example:
            ```python
            assert loader.create_module(spec) is None
            ```
        """
        return None

    def exec_module(self, module: ModuleType) -> None:
        """Execute the stored code object of the unit named by the module.

        Example:
            ```python
            loader.exec_module(module)
            ```
        """
        exec(self.target.code_for(module.__name__), module.__dict__)

    def load_unit(self, unit: CompilationUnit, unit_builtins: dict[str, Any]) -> ModuleType:
        """Create and execute the module holding `unit`.

        The module is private to this call and never enters `sys.modules`.

        Example:
            ```python
            module = loader.load_unit(unit, gate.unit_builtins(importer.import_module))
            cls = getattr(module, unit.name)
            ```
        """
        spec = importlib.util.spec_from_loader(unit.name, self, origin=unit.filename)
        if spec is None:
            raise ImportError(f"Cannot build a module spec for {unit.name!r}")
        module = importlib.util.module_from_spec(spec)
        module.__dict__["__builtins__"] = unit_builtins
        module.__file__ = unit.filename
        self.exec_module(module)
        return module
