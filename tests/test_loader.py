import sys
from pathlib import Path

import pytest

from snippet_eval import EngineConfig, Evaluator, PolicyViolation, RuntimeFailure, SecurityPolicy, Success
from snippet_eval.execution.loader import ClasspathImporter


def _write_library(root: Path) -> None:
    (root / "sev_helpers.py").write_text("def double(x):\n    return 2 * x\n", encoding="utf-8")
    package = root / "sev_pkg"
    package.mkdir()
    (package / "__init__.py").write_text("from .core import VALUE\n", encoding="utf-8")
    (package / "core.py").write_text("VALUE = 7\n", encoding="utf-8")


def test_snippet_imports_module_from_classpath(tmp_path: Path) -> None:
    _write_library(tmp_path)
    config = EngineConfig(classpath=[str(tmp_path)], security_enabled=False)

    outcome = Evaluator(config).evaluate("import sev_helpers", "sev_helpers.double(21)")

    assert isinstance(outcome, Success)
    assert outcome.value == 42
    assert outcome.diagnostics == {}
    assert "sev_helpers" not in sys.modules


def test_package_relative_imports_resolve_on_classpath(tmp_path: Path) -> None:
    _write_library(tmp_path)
    config = EngineConfig(classpath=[str(tmp_path)], security_enabled=False)

    outcome = Evaluator(config).evaluate("", "from sev_pkg import VALUE\nVALUE * 2")

    assert isinstance(outcome, Success)
    assert outcome.value == 14
    assert "sev_pkg" not in sys.modules
    assert "sev_pkg.core" not in sys.modules


def test_classpath_module_is_loaded_once_per_importer(tmp_path: Path) -> None:
    _write_library(tmp_path)
    importer = ClasspathImporter([str(tmp_path)])

    first = importer.import_module("sev_helpers")
    second = importer.import_module("sev_helpers")

    assert first is second
    assert importer.owns("sev_helpers")
    assert not importer.owns("json")


def test_dotted_import_returns_top_level_package(tmp_path: Path) -> None:
    _write_library(tmp_path)
    importer = ClasspathImporter([str(tmp_path)])

    top = importer.import_module("sev_pkg.core")

    assert top.__name__ == "sev_pkg"
    assert top.core.VALUE == 7


def test_engines_with_different_classpaths_are_isolated(tmp_path: Path) -> None:
    left = tmp_path / "left"
    right = tmp_path / "right"
    for root, value in ((left, 1), (right, 2)):
        root.mkdir()
        (root / "sev_side.py").write_text(f"SIDE = {value}\n", encoding="utf-8")

    left_outcome = Evaluator(EngineConfig(classpath=[str(left)], security_enabled=False)).evaluate(
        "import sev_side", "sev_side.SIDE"
    )
    right_outcome = Evaluator(EngineConfig(classpath=[str(right)], security_enabled=False)).evaluate(
        "import sev_side", "sev_side.SIDE"
    )

    assert isinstance(left_outcome, Success) and left_outcome.value == 1
    assert isinstance(right_outcome, Success) and right_outcome.value == 2


def test_missing_module_fails_at_runtime() -> None:
    config = EngineConfig(security_enabled=False)

    outcome = Evaluator(config).evaluate("", "import sev_not_installed_anywhere")

    assert isinstance(outcome, RuntimeFailure)
    assert outcome.failure is not None
    assert isinstance(outcome.failure.cause, ModuleNotFoundError)
    assert outcome.failure.line == 1


def test_unknown_classpath_module_raises_module_not_found(tmp_path: Path) -> None:
    importer = ClasspathImporter([str(tmp_path)])

    with pytest.raises(ModuleNotFoundError):
        importer.import_module("sev_not_installed_anywhere")


def test_policy_blocking_open_stops_classpath_reads(tmp_path: Path) -> None:
    _write_library(tmp_path)
    policy = SecurityPolicy(blocked_imports=[], blocked_events=["open"])
    config = EngineConfig(classpath=[str(tmp_path)], policy=policy)

    outcome = Evaluator(config).evaluate("", "import sev_helpers\nsev_helpers.double(2)")

    assert isinstance(outcome, RuntimeFailure)
    assert outcome.failure is not None
    assert isinstance(outcome.failure.cause, PolicyViolation)
