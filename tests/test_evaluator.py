import time

from snippet_eval import (
    CompileFailure,
    EngineConfig,
    Evaluator,
    InternalFailure,
    ResultTypeError,
    RuntimeFailure,
    Severity,
    Success,
    Timeout,
    evaluate,
)


def _evaluator(**kwargs) -> Evaluator:
    kwargs.setdefault("timeout_seconds", 2)
    return Evaluator(EngineConfig(**kwargs))


def test_simple_expression_succeeds() -> None:
    outcome = _evaluator().evaluate("", "1 + 1")

    assert isinstance(outcome, Success)
    assert outcome.ok is True
    assert outcome.value == 2
    assert Severity.ERROR not in outcome.diagnostics
    assert outcome.captured_output == ""


def test_last_expression_is_the_value() -> None:
    code = """
total = 0
for i in range(5):
    total += i
total * 2
"""
    outcome = _evaluator().evaluate("", code)

    assert isinstance(outcome, Success)
    assert outcome.value == 20


def test_snippet_without_trailing_expression_returns_none() -> None:
    outcome = _evaluator().evaluate("", "x = 41\nx += 1")

    assert isinstance(outcome, Success)
    assert outcome.value is None


def test_explicit_return_is_allowed() -> None:
    outcome = _evaluator().evaluate("", "if True:\n    return 'early'\n'late'")

    assert isinstance(outcome, Success)
    assert outcome.value == "early"


def test_prelude_definitions_are_visible() -> None:
    prelude = "def square(n):\n    return n * n"
    outcome = _evaluator().evaluate(prelude, "square(7)")

    assert isinstance(outcome, Success)
    assert outcome.value == 49


def test_syntax_error_is_compile_failure_and_never_runs(capsys) -> None:
    code = "print('SENTINEL-never-printed')\nvalue = {1: (2,"
    outcome = _evaluator().evaluate("", code)

    assert isinstance(outcome, CompileFailure)
    assert outcome.ok is False
    assert outcome.errors
    assert outcome.errors[0].position is not None
    assert "SENTINEL" not in capsys.readouterr().out


def test_unbounded_loop_times_out_quickly() -> None:
    evaluator = _evaluator(timeout_seconds=0.2)

    started = time.monotonic()
    outcome = evaluator.evaluate("", "while True:\n    pass")
    elapsed = time.monotonic() - started

    assert isinstance(outcome, Timeout)
    assert elapsed < 1.0


def test_engine_recovers_after_timeout() -> None:
    evaluator = _evaluator(timeout_seconds=0.2)
    first_target = evaluator.target.target_id

    assert isinstance(evaluator.evaluate("", "while True:\n    pass"), Timeout)
    outcome = evaluator.evaluate("", "'alive'")

    assert isinstance(outcome, Success)
    assert outcome.value == "alive"
    assert evaluator.target.target_id != first_target


def test_direct_raise_reports_snippet_line() -> None:
    code = "a = 1\nb = 2\nraise ValueError('boom')"
    outcome = _evaluator().evaluate("import math", code)

    assert isinstance(outcome, RuntimeFailure)
    assert outcome.failure is not None
    assert isinstance(outcome.failure.cause, ValueError)
    assert outcome.failure.line == 3


def test_raise_inside_prelude_helper_points_at_calling_line() -> None:
    prelude = "def outer():\n    return inner()\n\ndef inner():\n    return 1 / 0"
    outcome = _evaluator().evaluate(prelude, "x = 5\nouter()")

    assert isinstance(outcome, RuntimeFailure)
    assert outcome.failure is not None
    assert isinstance(outcome.failure.cause, ZeroDivisionError)
    assert outcome.failure.line == 2


def test_failure_without_snippet_frame_has_no_line() -> None:
    prelude = "def load():\n    raise RuntimeError('prelude broke')\n\nload()"
    outcome = _evaluator().evaluate(prelude, "1")

    assert isinstance(outcome, RuntimeFailure)
    assert outcome.failure is not None
    assert isinstance(outcome.failure.cause, RuntimeError)
    assert outcome.failure.line is None


def test_result_type_mismatch_is_runtime_failure() -> None:
    outcome = _evaluator().evaluate("", "'not a number'", result_type=int)

    assert isinstance(outcome, RuntimeFailure)
    assert outcome.failure is not None
    assert isinstance(outcome.failure.cause, ResultTypeError)
    assert outcome.failure.line is None


def test_result_type_match_succeeds() -> None:
    outcome = _evaluator().evaluate("", "3 * 3", result_type=int)

    assert isinstance(outcome, Success)
    assert outcome.value == 9


def test_sequential_calls_with_same_symbol_both_succeed() -> None:
    evaluator = _evaluator()
    code = "def helper():\n    return 10\nhelper()"

    first = evaluator.evaluate("class Shared:\n    pass", code)
    second = evaluator.evaluate("class Shared:\n    pass", code)

    assert isinstance(first, Success) and isinstance(second, Success)
    assert first.value == second.value == 10
    for outcome in (first, second):
        messages = [d.message for items in outcome.diagnostics.values() for d in items]
        assert not any("defined" in message for message in messages)


def test_target_only_holds_latest_unit() -> None:
    evaluator = _evaluator()
    evaluator.evaluate("", "1")
    evaluator.evaluate("", "2")

    assert len(evaluator.target.names()) == 1


def test_target_rotates_after_unit_limit() -> None:
    evaluator = _evaluator(max_units_per_target=2)
    first_target = evaluator.target.target_id

    evaluator.evaluate("", "1")
    evaluator.evaluate("", "2")
    assert evaluator.target.target_id == first_target

    outcome = evaluator.evaluate("", "3")
    assert isinstance(outcome, Success)
    assert evaluator.target.target_id != first_target


def test_stdout_is_captured_and_not_leaked(capsys) -> None:
    outcome = _evaluator().evaluate("", "print('Hello')\nprint('World', end='!')")

    assert isinstance(outcome, Success)
    assert outcome.captured_output == "Hello\nWorld!"
    assert "Hello" not in capsys.readouterr().out


def test_output_is_captured_on_later_calls_too(capsys) -> None:
    evaluator = _evaluator()
    first = evaluator.evaluate("", "print('one')")
    second = evaluator.evaluate("", "print('two')")

    assert isinstance(first, Success) and isinstance(second, Success)
    assert first.captured_output == "one\n"
    assert second.captured_output == "two\n"
    print("host line")
    assert capsys.readouterr().out == "host line\n"


def test_system_exit_is_runtime_failure() -> None:
    outcome = _evaluator(security_enabled=False).evaluate("", "import sys\nsys.exit(3)")

    assert isinstance(outcome, RuntimeFailure)
    assert outcome.failure is not None
    assert isinstance(outcome.failure.cause, SystemExit)
    assert outcome.failure.line == 2


def test_toolchain_crash_is_internal_failure() -> None:
    class _BrokenToolchain:
        def compile(self, source, filename, *, classpath, options, reporter):
            raise OSError("toolchain unavailable")

    evaluator = Evaluator(EngineConfig(timeout_seconds=2), toolchain=_BrokenToolchain())
    outcome = evaluator.evaluate("", "1")

    assert isinstance(outcome, InternalFailure)
    assert isinstance(outcome.cause, OSError)


def test_module_level_evaluate_helper() -> None:
    outcome = evaluate("len('abc')", config=EngineConfig(timeout_seconds=2))

    assert isinstance(outcome, Success)
    assert outcome.value == 3


def test_base_exceptions_from_snippet_are_runtime_failures() -> None:
    evaluator = _evaluator()

    for code, expected in (
        ("x = 1\nraise KeyboardInterrupt('stop')", KeyboardInterrupt),
        ("x = 1\nraise GeneratorExit()", GeneratorExit),
    ):
        outcome = evaluator.evaluate("", code)

        assert isinstance(outcome, RuntimeFailure)
        assert outcome.failure is not None
        assert isinstance(outcome.failure.cause, expected)
        assert outcome.failure.line == 2


def test_toolchain_base_exception_is_internal_failure() -> None:
    class _InterruptedToolchain:
        def compile(self, source, filename, *, classpath, options, reporter):
            raise KeyboardInterrupt("compiler interrupted")

    evaluator = Evaluator(EngineConfig(timeout_seconds=2), toolchain=_InterruptedToolchain())
    outcome = evaluator.evaluate("", "1")

    assert isinstance(outcome, InternalFailure)
    assert isinstance(outcome.cause, KeyboardInterrupt)


def test_output_of_snippet_started_threads_is_not_captured(capsys) -> None:
    code = (
        "import threading\n"
        "child = threading.Thread(target=print, args=('from child',))\n"
        "child.start()\n"
        "child.join()\n"
        "print('from snippet')"
    )
    outcome = _evaluator().evaluate("", code)

    assert isinstance(outcome, Success)
    assert outcome.captured_output == "from snippet\n"
    assert "from child" in capsys.readouterr().out
