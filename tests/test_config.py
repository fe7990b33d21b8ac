import os
from pathlib import Path

import pytest

from snippet_eval import EngineConfig, SecurityPolicy
from snippet_eval.config import parse_compiler_flags


def test_defaults() -> None:
    config = EngineConfig()

    assert config.classpath == ()
    assert config.security_enabled is True
    assert config.timeout_seconds == 5.0
    assert config.policy.mode == "restrict"
    assert "os" in config.policy.blocked_imports


def test_classpath_entries_are_absolute_and_joined(tmp_path: Path) -> None:
    config = EngineConfig(classpath=[str(tmp_path / "a"), "relative"])

    assert config.classpath[1] == os.path.abspath("relative")
    assert config.classpath_string == os.pathsep.join(config.classpath)


def test_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError, match="timeout_seconds"):
        EngineConfig(timeout_seconds=0)


def test_rejects_unknown_compiler_flag() -> None:
    with pytest.raises(ValueError, match="Unsupported compiler flag"):
        EngineConfig(compiler_flags=["-bogus"])


def test_rejects_unknown_future_feature() -> None:
    with pytest.raises(ValueError, match="__future__"):
        parse_compiler_flags(["-future:braces"])


def test_flag_parsing() -> None:
    options = parse_compiler_flags(["-O", "-OO", "-Werror", "-Xno-import-check"])

    assert options.optimize == 2
    assert options.fatal_warnings is True
    assert options.check_imports is False
    assert options.suppress_warnings is False


def test_from_file_reads_engine_and_policy_tables(tmp_path: Path) -> None:
    config_file = tmp_path / "engine.toml"
    config_file.write_text(
        (
            "[engine]\n"
            "classpath = [\"lib\"]\n"
            "compiler_flags = [\"-O\"]\n"
            "timeout_seconds = 1.5\n"
            "security_enabled = false\n"
            "\n"
            "[policy]\n"
            "mode = \"allow\"\n"
            "allowed_imports = [\"math\"]\n"
        ),
        encoding="utf-8",
    )

    config = EngineConfig.from_file(str(config_file))

    assert config.classpath == (str(tmp_path / "lib"),)
    assert config.compiler_options.optimize == 1
    assert config.timeout_seconds == 1.5
    assert config.security_enabled is False
    assert config.policy.mode == "allow"
    assert config.policy.allowed_imports == ["math"]


def test_policy_file_path_is_resolved_next_to_config(tmp_path: Path) -> None:
    (tmp_path / "policy.toml").write_text(
        "[policy]\nmode = \"restrict\"\nblocked_imports = [\"math\"]\n", encoding="utf-8"
    )
    config_file = tmp_path / "engine.toml"
    config_file.write_text("[engine]\npolicy_file = \"policy.toml\"\n", encoding="utf-8")

    config = EngineConfig.from_file(str(config_file))

    assert config.policy.blocked_imports == ["math"]
    assert config.policy.config_path == str(tmp_path / "policy.toml")


def test_rejects_policy_and_policy_file_together(tmp_path: Path) -> None:
    config_file = tmp_path / "engine.toml"
    config_file.write_text(
        "[engine]\npolicy_file = \"policy.toml\"\n\n[policy]\nmode = \"restrict\"\n",
        encoding="utf-8",
    )

    with pytest.raises(ValueError, match="either a \\[policy\\] table or 'policy_file'"):
        EngineConfig.from_file(str(config_file))


def test_policy_rejects_invalid_mode() -> None:
    with pytest.raises(ValueError, match="mode must be"):
        SecurityPolicy(mode="deny")


def test_policy_rejects_non_string_lists() -> None:
    with pytest.raises(ValueError, match="only strings"):
        SecurityPolicy.from_mapping({"blocked_imports": ["os", 1]})


def test_policy_mapping_falls_back_to_defaults() -> None:
    policy = SecurityPolicy.from_mapping({"mode": "restrict", "blocked_imports": []})

    assert policy.blocked_imports == []
    assert policy.blocked_builtins == SecurityPolicy().blocked_builtins
