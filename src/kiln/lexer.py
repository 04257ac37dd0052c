"""Directive tokenizer for Kiln templates.

Splits raw template text on delimiter pairs into directive spans. Each span
holds the code between an open and a close delimiter plus the literal text
that follows it, up to the next open delimiter or end of document:

    ```
    "Hello <%= name %>!"
    → DirectiveSpan(code="", literal="Hello ")      # implicit leading span
    → DirectiveSpan(code="= name ", literal="!")
    ```

Whitespace Control:
Trim markers are read from the code itself and stripped before the code is
classified:

- ``-%>``: remove exactly one newline right after the tag
- ``_%>``: remove all leading spaces/tabs right after the tag
- ``<%_``: remove trailing spaces/tabs from the previous literal (applied by
  the parser, which owns the already queued commands)

"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from kiln.environment.exceptions import ParseError

# Any of the four line separator spellings counts as one line break
_LINE_SEPARATORS = re.compile(r"\n\r|\r\n|\r|\n")

# Horizontal whitespace only; newlines are never consumed by "_" markers
_LEADING_HSPACE = re.compile(r"^[ \t\u00a0\u1680\u2000-\u200a\u202f\u205f\u3000]*")
_TRAILING_HSPACE = re.compile(r"[ \t\u00a0\u1680\u2000-\u200a\u202f\u205f\u3000]*\Z")


@dataclass(frozen=True, slots=True)
class Delimiters:
    """Open/close delimiter pair for directives."""

    open: str = "<%"
    close: str = "%>"

    def __post_init__(self) -> None:
        if not self.open or not self.close:
            raise ValueError("Delimiters must be non-empty strings")


DEFAULT_DELIMITERS = Delimiters()


@dataclass(frozen=True, slots=True)
class DirectiveSpan:
    """One directive plus the literal text following it.

    Attributes:
        code: Directive code with trim markers removed.
        literal: Text after the close delimiter, with ``-``/``_`` trims applied.
        lineno: 1-based line of the open delimiter.
        trim_newline: Code ended with ``-``.
        trim_following_whitespace: Code ended with ``_``.
        trim_preceding_whitespace: Code started with ``_``.
    """

    code: str
    literal: str
    lineno: int
    trim_newline: bool = False
    trim_following_whitespace: bool = False
    trim_preceding_whitespace: bool = False


def count_line_separators(text: str) -> int:
    """Count line separators, treating ``\\r\\n`` and ``\\n\\r`` as one."""
    return len(_LINE_SEPARATORS.findall(text))


def strip_leading_hspace(text: str) -> str:
    return _LEADING_HSPACE.sub("", text, count=1)


def strip_trailing_hspace(text: str) -> str:
    return _TRAILING_HSPACE.sub("", text, count=1)


def _read_markers(code: str) -> tuple[str, bool, bool, bool]:
    """Strip trim markers from directive code.

    The three checks are independent and run in a fixed order: trailing
    ``-``, leading ``_``, trailing ``_``. So ``_-`` at the end of a tag sets
    both trailing flags.
    """
    trim_newline = code.endswith("-")
    if trim_newline:
        code = code[:-1]
    trim_preceding = code.startswith("_")
    if trim_preceding:
        code = code[1:]
    trim_following = code.endswith("_")
    if trim_following:
        code = code[:-1]
    return code, trim_newline, trim_following, trim_preceding


def tokenize(
    source: str,
    *,
    filename: str | Path | None = None,
    delimiters: Delimiters = DEFAULT_DELIMITERS,
) -> list[DirectiveSpan]:
    """Split template source into directive spans.

    The text before the first open delimiter becomes the literal of an
    implicit empty directive at position 0, so the result is never empty.

    Args:
        source: Raw template text.
        filename: Template path, used in error messages.
        delimiters: Open/close delimiter pair.

    Returns:
        Directive spans in source order.

    Raises:
        ParseError: An open delimiter has no matching close delimiter.
    """
    components = (delimiters.open + delimiters.close + source).split(delimiters.open)

    spans: list[DirectiveSpan] = []
    consumed_lines = 0

    for component in components[1:]:
        end = component.find(delimiters.close)
        if end == -1:
            raise ParseError(
                f"Error while parsing template. Unmatched {delimiters.open}",
                filename=filename,
                lineno=consumed_lines + 1,
            )

        code, trim_newline, trim_following, trim_preceding = _read_markers(component[:end])

        literal = component[end + len(delimiters.close) :]
        if trim_newline and literal.startswith("\n"):
            # Only the newline caused by the tag itself, not every leading newline
            literal = literal[1:]
        if trim_following:
            literal = strip_leading_hspace(literal)

        spans.append(
            DirectiveSpan(
                code=code,
                literal=literal,
                lineno=consumed_lines + 1,
                trim_newline=trim_newline,
                trim_following_whitespace=trim_following,
                trim_preceding_whitespace=trim_preceding,
            )
        )
        consumed_lines += count_line_separators(component)

    return spans
