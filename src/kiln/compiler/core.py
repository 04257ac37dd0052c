"""Kiln Code Generator: CommandSequence to generated program source.

The generated program is a standalone Python module. Literal text and
output expressions become ``_write(...)`` calls; control-flow code is
copied in unchanged and re-indented to the current block depth:

    ```
    Hello <% for n in names: %><%= n %>, <% end %>!
    ```

generates (inside the entry point's ``try``):

    ```python
    _write('Hello ')
    for n in names:
        _write(_str(n))
        _write(', ')
    _write('!')
    ```

Block Structure:
Python needs indentation, templates don't have it, so blocks are explicit:

- a control line whose last token (comments aside) is ``:`` opens a block
- ``<% end %>`` closes the innermost block
- ``else:``, ``elif ...:``, ``except ...:`` and ``finally:`` close the
  current block and open the next one at the same depth
- an opened block with nothing in it gets a ``pass``

``match`` statements are written with one ``end`` per ``case``:
``<% match x: %><% case 1: %>one<% end %><% end %>``.

Multi-line control code keeps its own relative indentation; it is dedented
as a unit and placed at the current depth. Code written on the open
delimiter's own line starts at that depth, and the lines after it are
dedented together.

Entry Point:
The whole body runs inside one ``try`` that reports any exception through
the runtime's ``Log.error`` (stderr) and exits with status 1. The only
observable outputs of a failed run are what was written before the failure
plus the error text.

"""

from __future__ import annotations

import io
import re
import textwrap
import tokenize
from dataclasses import dataclass
from pathlib import Path

from kiln._types import (
    Command,
    CommandSequence,
    ControlFlow,
    EncodedLiteral,
    Import,
    Output,
)
from kiln.environment.exceptions import DirectiveError

#: Name of the generated module inside the build workspace
MAIN_MODULE = "main"

BLOCK_END = "end"

_END_RE = re.compile(rf"^{BLOCK_END}\s*(#.*)?$")
_CONTINUATION_RE = re.compile(r"^(else|elif|except|finally)\b")

_HEADER = """\
# Generated by Kiln. Do not edit.
import sys

from kiln_runtime import Log, import_names as _import_names, load_context
from kiln_runtime import text as _str, write as _write

try:
    globals().update(load_context(sys.argv[1]))
"""

_FOOTER = """\
except Exception as error:
    Log.error(error)
    sys.exit(1)
"""


@dataclass(frozen=True, slots=True)
class GeneratedProgram:
    """Generated program source plus the files to compile alongside it.

    Attributes:
        source: Python source of the generated module.
        imports: Import files, in import order.
    """

    source: str
    imports: tuple[Path, ...] = ()


@dataclass(slots=True)
class _Block:
    filename: str | None
    lineno: int
    has_body: bool = False


class CodeGenerator:
    """Render a CommandSequence into one generated program.

    Example:
            >>> sequence = Parser(path, source="Hi <%= name %>").parse()
            >>> program = CodeGenerator().generate(sequence)
            >>> "_write(_str(name))" in program.source
            True

    A CodeGenerator can be reused; generate() resets all per-program state.
    """

    __slots__ = ("_blocks", "_indent", "_lines")

    def __init__(self, indent: str = "    "):
        self._indent = indent
        self._lines: list[str] = []
        self._blocks: list[_Block] = []

    def generate(self, sequence: CommandSequence) -> GeneratedProgram:
        """Generate program source for ``sequence``.

        Raises:
            DirectiveError: ``end`` without an open block, or a block left
                open at the end of the template.
        """
        self._lines = []
        self._blocks = []

        for path in sequence.imports:
            self._emit(f"globals().update(_import_names({path.stem!r}))")

        for command in sequence:
            self._compile(command)

        if self._blocks:
            block = self._blocks[-1]
            raise DirectiveError(
                f"Block is never closed; add <% {BLOCK_END} %>",
                filename=block.filename,
                lineno=block.lineno,
            )

        body = "\n".join(self._lines)
        source = _HEADER
        if body:
            source += body + "\n"
        source += _FOOTER
        return GeneratedProgram(source=source, imports=tuple(sequence.imports))

    # ─────────────────────────────────────────────────────────────────────────
    # Command dispatch
    # ─────────────────────────────────────────────────────────────────────────

    def _compile(self, command: Command) -> None:
        if isinstance(command, EncodedLiteral):
            if command.text:
                self._emit(f"_write({ascii(command.text)})")
        elif isinstance(command, Output):
            self._emit(_output_statement(command.expression))
        elif isinstance(command, ControlFlow):
            self._compile_control_flow(command)
        elif isinstance(command, Import):
            # Surfaced through GeneratedProgram.imports, never in the body
            pass
        else:
            raise TypeError(f"Unknown command: {command!r}")

    def _compile_control_flow(self, command: ControlFlow) -> None:
        lines = _normalize(command.code)
        if not lines:
            return
        first = lines[0].strip()

        if _END_RE.match(first) and len(lines) == 1:
            self._close_block(command)
            return

        if _CONTINUATION_RE.match(first):
            self._close_block(command)

        for line in lines:
            self._emit(line)

        if _opens_block(lines):
            self._blocks.append(_Block(command.filename, command.lineno))

    def _close_block(self, command: Command) -> None:
        if not self._blocks:
            raise DirectiveError(
                f"`{BLOCK_END}` (or a continuation such as `else:`) without an open block",
                filename=command.filename,
                lineno=command.lineno,
            )
        block = self._blocks[-1]
        if not block.has_body:
            self._emit("pass")
        self._blocks.pop()

    def _emit(self, line: str) -> None:
        if self._blocks:
            self._blocks[-1].has_body = True
        # +1 for the entry point's try
        depth = len(self._blocks) + 1
        self._lines.append(f"{self._indent * depth}{line}" if line.strip() else "")


def _normalize(code: str) -> list[str]:
    """Split control code into lines dedented as a unit.

    Code on the open delimiter's line is indented by whatever follows the
    delimiter, so that line is stripped and the remaining lines are
    dedented on their own. Code starting on the line after the delimiter
    keeps its relative indentation.
    """
    lines = code.splitlines()
    head: list[str] = []
    if lines and lines[0].strip():
        head = [lines.pop(0).strip()]
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines:
        return head
    body = [line.rstrip() for line in textwrap.dedent("\n".join(lines)).splitlines()]
    return head + body


_TRIVIA = frozenset(
    {
        tokenize.COMMENT,
        tokenize.NL,
        tokenize.NEWLINE,
        tokenize.INDENT,
        tokenize.DEDENT,
        tokenize.ENDMARKER,
    }
)


def _opens_block(lines: list[str]) -> bool:
    """True when the code's last token is a block-opening ``:``.

    Trailing comments are ignored, also on the opening line itself
    (``for x in xs:  # loop``).
    """
    readline = io.StringIO("\n".join(lines) + "\n").readline
    try:
        tokens = [t for t in tokenize.generate_tokens(readline) if t.type not in _TRIVIA]
    except (tokenize.TokenError, SyntaxError):
        # Unbalanced brackets or bad indentation; the compiler reports it
        significant = [line for line in lines if line.strip() and not line.lstrip().startswith("#")]
        return bool(significant) and significant[-1].rstrip().endswith(":")
    return bool(tokens) and tokens[-1].type == tokenize.OP and tokens[-1].string == ":"


def _output_statement(expression: str) -> str:
    expression = expression.strip()
    if "\n" in expression or "#" in expression:
        # Keep the closing parens out of reach of a trailing comment
        return f"_write(_str(\n{expression}\n))"
    return f"_write(_str({expression}))"


def generate(sequence: CommandSequence) -> GeneratedProgram:
    """Generate program source for ``sequence`` with default settings."""
    return CodeGenerator().generate(sequence)
