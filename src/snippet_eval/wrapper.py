from __future__ import annotations

import ast
import itertools
import textwrap
import warnings
from dataclasses import dataclass

UNIT_PREFIX = "_SnippetUnit_"
FILENAME_TEMPLATE = "<snippet-eval:{name}>"
_BODY_INDENT = " " * 8

_counter = itertools.count(1)


@dataclass(frozen=True, slots=True)
class CompilationUnit:
    """Wrapped source for one evaluation, ready to hand to the toolchain.

    `snippet_offset` is the number of source lines in front of the snippet,
    so unit line `snippet_offset + 1` is the snippet's first line.

    Example:
        ```python
        unit = wrap("import math", "math.pi", name=next_unit_name())
        ```
    """

    name: str
    filename: str
    source: str
    snippet_offset: int

    def snippet_line(self, unit_line: int) -> int | None:
        """Translate a line of the unit source into a snippet line.

        Lines in the prelude or the generated header have no snippet line.

        Example:
            ```python
            line = unit.snippet_line(frame.f_lineno)
            ```
        """
        line = unit_line - self.snippet_offset
        return line if line >= 1 else None


def next_unit_name() -> str:
    """Return a process-wide unique unit class name.

    Example:
        ```python
        name = next_unit_name()  # "_SnippetUnit_1"
        ```
    """
    return f"{UNIT_PREFIX}{next(_counter)}"


def _returning_body(code: str) -> str:
    """Rewrite the trailing expression statement of `code` into a return.

    Code that does not parse, or does not end with an expression, is
    returned unchanged.

    Example:
        ```python
        assert _returning_body("x = 1\\nx + 1") == "x = 1\\nreturn x + 1"
        ```
    """
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            tree = ast.parse(code)
    except (SyntaxError, ValueError):
        return code
    last = tree.body[-1] if tree.body else None
    if not isinstance(last, ast.Expr) or isinstance(last.value, (ast.Yield, ast.YieldFrom)):
        return code
    lines = code.splitlines(keepends=True)
    row = lines[last.lineno - 1]
    # col_offset is a UTF-8 byte offset
    prefix = row.encode("utf-8")[: last.col_offset].decode("utf-8")
    lines[last.lineno - 1] = prefix + "return " + row[len(prefix) :]
    return "".join(lines)


def wrap(prelude: str, code: str, name: str | None = None) -> CompilationUnit:
    """Wrap `prelude` and `code` into a uniquely named zero-argument unit.

    The prelude is emitted verbatim, followed by a class whose `__call__`
    evaluates the snippet and returns the value of its last expression.

    Example:
        ```python
        unit = wrap("", "1 + 1")
        print(unit.source)
        ```
    """
    unit_name = name or next_unit_name()
    head = prelude
    if head and not head.endswith("\n"):
        head += "\n"
    body = _returning_body(code)
    if not body.strip():
        body = "pass"
    header = f"class {unit_name}:\n    def __call__(self):\n"
    source = head + header + textwrap.indent(body, _BODY_INDENT, lambda line: True)
    if not source.endswith("\n"):
        source += "\n"
    return CompilationUnit(
        name=unit_name,
        filename=FILENAME_TEMPLATE.format(name=unit_name),
        source=source,
        snippet_offset=head.count("\n") + 2,
    )
