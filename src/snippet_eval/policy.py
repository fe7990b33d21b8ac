from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


def _default_policy_path() -> Path:
    """Return bundled default policy TOML path.

    Example:
        ```python
        path = _default_policy_path()
        ```
    """
    return Path(__file__).with_name("default_policy.toml")


def _read_policy_toml(path: Path) -> dict[str, Any]:
    """Read policy TOML and return normalized policy dictionary.

    Example:
        ```python
        raw = _read_policy_toml(Path("/tmp/policy.toml"))
        ```
    """
    if not path.exists():
        return {
            "mode": "restrict",
            "blocked_imports": ["os", "subprocess", "socket", "ctypes", "importlib"],
            "blocked_builtins": ["eval", "exec", "open", "compile", "breakpoint", "input"],
            "allowed_imports": [],
            "allowed_builtins": [],
            "blocked_events": ["os.system", "subprocess.Popen", "socket.connect", "open:write"],
        }
    raw = tomllib.loads(path.read_text(encoding="utf-8"))
    policy_obj = raw.get("policy", raw)
    if not isinstance(policy_obj, dict):
        raise ValueError("Policy config must be a TOML table")
    return policy_obj


def _list_of_str(value: Any, field_name: str) -> list[str]:
    """Validate and normalize a list-of-strings policy field.

    Example:
        ```python
        blocked = _list_of_str(["os", "subprocess"], "blocked_imports")
        ```
    """
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be a list of strings")
    out: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"'{field_name}' must contain only strings")
        out.append(item)
    return out


_DEFAULT_POLICY_RAW = _read_policy_toml(_default_policy_path())
DEFAULT_MODE = str(_DEFAULT_POLICY_RAW.get("mode", "restrict"))
DEFAULT_BLOCKED_IMPORTS = _list_of_str(
    _DEFAULT_POLICY_RAW.get("blocked_imports", []), "blocked_imports"
)
DEFAULT_BLOCKED_BUILTINS = _list_of_str(
    _DEFAULT_POLICY_RAW.get("blocked_builtins", []), "blocked_builtins"
)
DEFAULT_ALLOWED_IMPORTS = _list_of_str(
    _DEFAULT_POLICY_RAW.get("allowed_imports", []), "allowed_imports"
)
DEFAULT_ALLOWED_BUILTINS = _list_of_str(
    _DEFAULT_POLICY_RAW.get("allowed_builtins", []), "allowed_builtins"
)
DEFAULT_BLOCKED_EVENTS = _list_of_str(
    _DEFAULT_POLICY_RAW.get("blocked_events", []), "blocked_events"
)


@dataclass(slots=True)
class SecurityPolicy:
    """Restrictions applied to snippets while the security gate is enabled.

    In ``restrict`` mode everything not listed as blocked is permitted; in
    ``allow`` mode only the listed imports and builtins are. Audit events in
    `blocked_events` are rejected in both modes. An event name ending in
    ``.*`` blocks every event sharing that prefix. The pseudo-event
    ``open:write`` blocks opening files for writing only, whether through a
    mode string or `os.open` flags. Blocking plain ``open`` also stops
    modules from being read off the classpath while the gate is active.

    Example:
        ```python
        policy = SecurityPolicy(blocked_imports=["os"], blocked_events=["open"])
        ```
    """

    mode: str = DEFAULT_MODE
    allowed_imports: list[str] = field(default_factory=lambda: DEFAULT_ALLOWED_IMPORTS.copy())
    blocked_imports: list[str] = field(default_factory=lambda: DEFAULT_BLOCKED_IMPORTS.copy())
    allowed_builtins: list[str] = field(default_factory=lambda: DEFAULT_ALLOWED_BUILTINS.copy())
    blocked_builtins: list[str] = field(default_factory=lambda: DEFAULT_BLOCKED_BUILTINS.copy())
    blocked_events: list[str] = field(default_factory=lambda: DEFAULT_BLOCKED_EVENTS.copy())
    config_path: str | None = None

    def __post_init__(self) -> None:
        """Validate mode after dataclass initialization.

        Example:
            ```python
            SecurityPolicy(mode="restrict")
            ```
        """
        if self.mode not in {"allow", "restrict"}:
            raise ValueError("mode must be 'allow' or 'restrict'")

    @classmethod
    def from_mapping(cls, raw: dict[str, Any], config_path: str | None = None) -> "SecurityPolicy":
        """Create a policy from an already parsed TOML table.

        Missing keys fall back to the bundled defaults.

        Example:
            ```python
            policy = SecurityPolicy.from_mapping({"mode": "allow", "allowed_imports": ["math"]})
            ```
        """
        return cls(
            mode=str(raw.get("mode", DEFAULT_MODE)),
            allowed_imports=_list_of_str(
                raw.get("allowed_imports", DEFAULT_ALLOWED_IMPORTS), "allowed_imports"
            ),
            blocked_imports=_list_of_str(
                raw.get("blocked_imports", DEFAULT_BLOCKED_IMPORTS), "blocked_imports"
            ),
            allowed_builtins=_list_of_str(
                raw.get("allowed_builtins", DEFAULT_ALLOWED_BUILTINS), "allowed_builtins"
            ),
            blocked_builtins=_list_of_str(
                raw.get("blocked_builtins", DEFAULT_BLOCKED_BUILTINS), "blocked_builtins"
            ),
            blocked_events=_list_of_str(
                raw.get("blocked_events", DEFAULT_BLOCKED_EVENTS), "blocked_events"
            ),
            config_path=config_path,
        )

    @classmethod
    def from_file(cls, config_path: str) -> "SecurityPolicy":
        """Create a policy instance from a TOML file.

        Example:
            ```python
            policy = SecurityPolicy.from_file("/tmp/policy.toml")
            ```
        """
        return cls.from_mapping(_read_policy_toml(Path(config_path)), config_path=config_path)

    def blocks_event(self, event: str) -> bool:
        """Return whether an audit event name is rejected by this policy.

        Example:
            ```python
            assert SecurityPolicy(blocked_events=["os.*"]).blocks_event("os.system")
            ```
        """
        for pattern in self.blocked_events:
            if pattern.endswith(".*"):
                if event.startswith(pattern[:-1]):
                    return True
            elif event == pattern:
                return True
        return False
