from __future__ import annotations

import __future__
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .policy import SecurityPolicy

DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_MAX_UNITS_PER_TARGET = 500


@dataclass(frozen=True, slots=True)
class CompilerOptions:
    """Toolchain options parsed from the configured compiler flags.

    Example:
        ```python
        options = parse_compiler_flags(["-O", "-Werror"])
        ```
    """

    optimize: int = -1
    fatal_warnings: bool = False
    suppress_warnings: bool = False
    future_flags: int = 0
    check_imports: bool = True


def _future_flag(feature: str) -> int:
    """Return the `compile()` flag bit for a `__future__` feature name.

    Example:
        ```python
        bit = _future_flag("annotations")
        ```
    """
    if feature not in __future__.all_feature_names:
        raise ValueError(f"Unknown __future__ feature in compiler flag: {feature!r}")
    return int(getattr(__future__, feature).compiler_flag)


def parse_compiler_flags(flags: tuple[str, ...] | list[str]) -> CompilerOptions:
    """Parse toolchain flag strings into `CompilerOptions`.

    Recognized flags:

    - ``-O`` / ``-OO``: optimization level 1 / 2 (asserts and docstrings stripped)
    - ``-Werror``: promote compile warnings to errors
    - ``-nowarn``: drop compile warnings
    - ``-future:<feature>``: compile as if ``from __future__ import <feature>``
    - ``-Xno-import-check``: skip resolving imported modules on the classpath

    Later flags win where they conflict.

    Example:
        ```python
        options = parse_compiler_flags(["-OO", "-future:annotations"])
        ```
    """
    optimize = -1
    fatal_warnings = False
    suppress_warnings = False
    future_flags = 0
    check_imports = True
    for flag in flags:
        if flag == "-O":
            optimize = 1
        elif flag == "-OO":
            optimize = 2
        elif flag == "-Werror":
            fatal_warnings = True
        elif flag == "-nowarn":
            suppress_warnings = True
        elif flag.startswith("-future:"):
            future_flags |= _future_flag(flag.split(":", 1)[1])
        elif flag == "-Xno-import-check":
            check_imports = False
        else:
            raise ValueError(f"Unsupported compiler flag: {flag!r}")
    return CompilerOptions(
        optimize=optimize,
        fatal_warnings=fatal_warnings,
        suppress_warnings=suppress_warnings,
        future_flags=future_flags,
        check_imports=check_imports,
    )


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Immutable construction-time settings of an `Evaluator`.

    Classpath entries are directories or zip archives searched for modules
    imported by snippets, ahead of the host's own import path. Relative
    entries are made absolute on construction.

    Example:
        ```python
        config = EngineConfig(classpath=["./libs"], timeout_seconds=2)
        ```
    """

    classpath: tuple[str, ...] = ()
    compiler_flags: tuple[str, ...] = ()
    security_enabled: bool = True
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    policy: SecurityPolicy = field(default_factory=SecurityPolicy)
    max_units_per_target: int = DEFAULT_MAX_UNITS_PER_TARGET

    def __post_init__(self) -> None:
        """Normalize sequences and validate limits.

        Example:
            ```python
            EngineConfig(timeout_seconds=0.5)
            ```
        """
        object.__setattr__(
            self, "classpath", tuple(os.path.abspath(str(entry)) for entry in self.classpath)
        )
        object.__setattr__(self, "compiler_flags", tuple(str(f) for f in self.compiler_flags))
        if float(self.timeout_seconds) <= 0:
            raise ValueError("timeout_seconds must be positive")
        if int(self.max_units_per_target) < 1:
            raise ValueError("max_units_per_target must be at least 1")
        parse_compiler_flags(self.compiler_flags)

    @property
    def classpath_string(self) -> str:
        """Return classpath entries joined with the platform path separator.

        Example:
            ```python
            EngineConfig(classpath=["/a", "/b"]).classpath_string  # "/a:/b"
            ```
        """
        return os.pathsep.join(self.classpath)

    @property
    def compiler_options(self) -> CompilerOptions:
        """Return the parsed compiler flags.

        Example:
            ```python
            assert EngineConfig(compiler_flags=["-O"]).compiler_options.optimize == 1
            ```
        """
        return parse_compiler_flags(self.compiler_flags)

    @classmethod
    def from_file(cls, config_path: str) -> "EngineConfig":
        """Create an engine config from a TOML file.

        The ``[engine]`` table holds the engine settings; security rules come
        from a ``[policy]`` table or from the file named by
        ``engine.policy_file``. Relative paths are resolved against the
        config file's directory.

        Example:
            ```python
            config = EngineConfig.from_file("/etc/snippet-eval/engine.toml")
            ```
        """
        path = Path(config_path)
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
        engine = raw.get("engine", {})
        if not isinstance(engine, dict):
            raise ValueError("'engine' must be a TOML table")
        return cls.from_mapping(engine, raw.get("policy"), base_dir=path.parent)

    @classmethod
    def from_mapping(
        cls,
        engine: dict[str, Any],
        policy: dict[str, Any] | None = None,
        *,
        base_dir: Path | None = None,
    ) -> "EngineConfig":
        """Create an engine config from parsed TOML tables.

        Example:
            ```python
            config = EngineConfig.from_mapping({"timeout_seconds": 1.5})
            ```
        """
        base = base_dir or Path.cwd()
        policy_file = engine.get("policy_file")
        if policy is not None and policy_file is not None:
            raise ValueError("Provide either a [policy] table or 'policy_file', not both")
        if policy_file is not None:
            resolved_policy = SecurityPolicy.from_file(str(base / str(policy_file)))
        elif policy is not None:
            if not isinstance(policy, dict):
                raise ValueError("'policy' must be a TOML table")
            resolved_policy = SecurityPolicy.from_mapping(policy)
        else:
            resolved_policy = SecurityPolicy()
        classpath = engine.get("classpath", [])
        flags = engine.get("compiler_flags", [])
        if not isinstance(classpath, list) or not isinstance(flags, list):
            raise ValueError("'classpath' and 'compiler_flags' must be lists of strings")
        return cls(
            classpath=tuple(str(base / str(entry)) for entry in classpath),
            compiler_flags=tuple(str(flag) for flag in flags),
            security_enabled=bool(engine.get("security_enabled", True)),
            timeout_seconds=float(engine.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)),
            policy=resolved_policy,
            max_units_per_target=int(
                engine.get("max_units_per_target", DEFAULT_MAX_UNITS_PER_TARGET)
            ),
        )
