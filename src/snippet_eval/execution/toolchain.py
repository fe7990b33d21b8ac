from __future__ import annotations

import ast
import importlib.machinery
import importlib.util
import logging
import os
import sys
import warnings
from types import CodeType
from typing import Protocol

from ..config import CompilerOptions
from ..diagnostics import DiagnosticCollector, ReportedMessage

_INFO_CATEGORIES = (DeprecationWarning, PendingDeprecationWarning)


class Toolchain(Protocol):
    def compile(
        self,
        source: str,
        filename: str,
        *,
        classpath: str,
        options: CompilerOptions,
        reporter: DiagnosticCollector,
    ) -> CodeType | None:
        """Compile `source`, report messages, and return the artifact if any.

        Example:
            ```python
            code = toolchain.compile(unit.source, unit.filename, classpath="", options=CompilerOptions(), reporter=collector)
            ```
        """
        ...


def _warning_level(category: type[Warning], options: CompilerOptions) -> int:
    """Return the logging level a compile warning is reported at.

    Example:
        ```python
        level = _warning_level(SyntaxWarning, CompilerOptions(fatal_warnings=True))
        ```
    """
    if options.fatal_warnings:
        return logging.ERROR
    if issubclass(category, _INFO_CATEGORIES):
        return logging.INFO
    return logging.WARNING


def _imported_roots(tree: ast.AST) -> list[tuple[str, int, int]]:
    """Return the top-level module names imported anywhere in `tree`.

    Each entry is ``(root, lineno, col_offset)``; relative imports are
    skipped.

    Example:
        ```python
        roots = _imported_roots(ast.parse("import os.path"))  # [("os", 1, 0)]
        ```
    """
    roots: list[tuple[str, int, int]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                roots.append((alias.name.partition(".")[0], node.lineno, node.col_offset))
        elif isinstance(node, ast.ImportFrom) and node.level == 0 and node.module:
            roots.append((node.module.partition(".")[0], node.lineno, node.col_offset))
    return roots


def module_on_path(root: str, classpath: str) -> bool:
    """Return whether a top-level module is importable from the classpath or host.

    Example:
        ```python
        assert module_on_path("json", "")
        ```
    """
    if root in sys.modules or root in sys.builtin_module_names:
        return True
    entries = [entry for entry in classpath.split(os.pathsep) if entry]
    if entries and importlib.machinery.PathFinder.find_spec(root, entries) is not None:
        return True
    try:
        return importlib.util.find_spec(root) is not None
    except (ImportError, ValueError):
        return False


class PythonToolchain:
    """Toolchain backed by the interpreter's own `compile()` builtin.

    Syntax errors become error messages, warnings raised while compiling
    become warning (or info) messages, and imports that cannot be resolved
    on the classpath are flagged as warnings.

    Example:
        ```python
        toolchain = PythonToolchain()
        code = toolchain.compile("x = 1", "<demo>", classpath="", options=CompilerOptions(), reporter=collector)
        ```
    """

    def compile(
        self,
        source: str,
        filename: str,
        *,
        classpath: str,
        options: CompilerOptions,
        reporter: DiagnosticCollector,
    ) -> CodeType | None:
        """Compile `source` into a code object, reporting into `reporter`.

        Example:
            ```python
            code = PythonToolchain().compile(unit.source, unit.filename, classpath="", options=CompilerOptions(), reporter=collector)
            ```
        """
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            try:
                tree = compile(
                    source,
                    filename,
                    "exec",
                    flags=ast.PyCF_ONLY_AST | options.future_flags,
                    dont_inherit=True,
                )
                code = compile(
                    tree,
                    filename,
                    "exec",
                    flags=options.future_flags,
                    dont_inherit=True,
                    optimize=options.optimize,
                )
            except SyntaxError as exc:
                reporter.report(
                    ReportedMessage(
                        level=logging.ERROR,
                        message=f"{type(exc).__name__}: {exc.msg}",
                        lineno=exc.lineno,
                        offset=exc.offset,
                        end_lineno=exc.end_lineno,
                        end_offset=exc.end_offset,
                    )
                )
                code = None
                tree = None
            except ValueError as exc:
                reporter.report(ReportedMessage(level=logging.ERROR, message=str(exc)))
                code = None
                tree = None

        if not options.suppress_warnings:
            for warning in caught:
                located = warning.filename == filename
                reporter.report(
                    ReportedMessage(
                        level=_warning_level(warning.category, options),
                        message=f"{warning.category.__name__}: {warning.message}",
                        lineno=warning.lineno if located else None,
                    )
                )

        if tree is not None and options.check_imports:
            for root, lineno, col in _imported_roots(tree):
                if module_on_path(root, classpath):
                    continue
                reporter.report(
                    ReportedMessage(
                        level=logging.ERROR if options.fatal_warnings else logging.WARNING,
                        message=f"module '{root}' not found on classpath",
                        lineno=lineno,
                        offset=col + 1,
                    )
                )

        if reporter.has_errors():
            return None
        return code
