"""Command types for Kiln.

The parser turns a template into an ordered sequence of commands; the code
generator consumes that sequence once to produce the generated program.
Commands are immutable and record where they came from for diagnostics.

Order matters: commands are emitted in source order and concatenated into
the generated program in that order.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path


class CommandType(Enum):
    """Kinds of command produced by the parser."""

    IMPORT = auto()
    OUTPUT = auto()
    CONTROL_FLOW = auto()
    ENCODED_LITERAL = auto()


@dataclass(frozen=True, slots=True)
class Command:
    """Base class for all commands.

    Attributes:
        filename: Template the command was parsed from.
        lineno: 1-based line of the directive that produced it.
    """

    filename: str | None = field(default=None, kw_only=True)
    lineno: int = field(default=0, kw_only=True)

    type = None  # overridden per subclass


@dataclass(frozen=True, slots=True)
class Import(Command):
    """A source file compiled alongside the generated program: <%- import("x") -%>"""

    path: Path

    type = CommandType.IMPORT


@dataclass(frozen=True, slots=True)
class Output(Command):
    """Expression printed without a line terminator: <%= expr %>"""

    expression: str

    type = CommandType.OUTPUT


@dataclass(frozen=True, slots=True)
class ControlFlow(Command):
    """Raw code inserted into the program body: <% code %>"""

    code: str

    type = CommandType.CONTROL_FLOW


@dataclass(frozen=True, slots=True)
class EncodedLiteral(Command):
    """Literal template text printed verbatim."""

    text: str

    type = CommandType.ENCODED_LITERAL


@dataclass(frozen=True, slots=True)
class CommandSequence:
    """Ordered commands for a template after include resolution.

    Attributes:
        commands: Commands in source order, includes spliced in place.
        imports: Import paths, deduplicated in source order.
    """

    commands: tuple[Command, ...]
    imports: tuple[Path, ...] = ()

    def __iter__(self) -> Iterator[Command]:
        return iter(self.commands)

    def __len__(self) -> int:
        return len(self.commands)
