"""Kiln Parser: directive classification and include/import resolution.

Turns directive spans from the lexer into a CommandSequence:

    ```
    <%- include("x") -%>   → commands of x.kiln, spliced in place
    <%- import("x") -%>    → Import(x.py)
    <%= expr %>            → Output(expr)
    <%# comment %>, <% %>  → nothing
    <% code %>             → ControlFlow(code)
    literal text           → EncodedLiteral(text)
    ```

Include Resolution:
Includes are resolved relative to the directory of the template containing
the directive. The default extension may be omitted. Includes are expanded
with an explicit frame stack rather than recursion, so arbitrarily long
include chains (and cycles of any length) never exhaust the Python call
stack. Each frame remembers the chain of templates that led to it; meeting
a template already on the chain raises IncludeCycleError.

Error Locations:
Errors detected while resolving a directive carry the location of that
directive. Errors raised while parsing an included template (an unmatched
delimiter, a nested missing file, ...) already carry the included
template's location and propagate unchanged.

"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, replace
from pathlib import Path

from kiln._types import (
    Command,
    CommandSequence,
    ControlFlow,
    EncodedLiteral,
    Import,
    Output,
)
from kiln.environment.exceptions import (
    DirectiveError,
    IncludeCycleError,
    MissingFileError,
)
from kiln.lexer import (
    DEFAULT_DELIMITERS,
    Delimiters,
    DirectiveSpan,
    strip_trailing_hspace,
    tokenize,
)

logger = logging.getLogger(__name__)

_INCLUDE_RE = re.compile(r'include\("([^"]*)"\)')
_IMPORT_RE = re.compile(r'import\("([^"]*)"\)')

DEFAULT_TEMPLATE_EXTENSION = "kiln"
DEFAULT_IMPORT_EXTENSION = "py"
DEFAULT_MAX_INCLUDE_DEPTH = 64


@dataclass(slots=True)
class _Frame:
    """A template being parsed, possibly nested inside an include."""

    path: Path
    spans: Iterator[DirectiveSpan]
    chain: tuple[Path, ...]
    # Index in the shared command list where this template's commands start
    start: int
    # Literal that follows the include directive currently being expanded
    pending: EncodedLiteral | None = None


class Parser:
    """Parse a template into a CommandSequence.

    Attributes:
        source_path: Path of the root template (includes resolve against it)

    Example:
            >>> parser = Parser(Path("templates/page.kiln"))
            >>> sequence = parser.parse()
            >>> [type(c).__name__ for c in sequence]
            ['EncodedLiteral', 'Output', 'EncodedLiteral']

    Thread-Safety:
        A Parser holds no state between parse() calls; each call builds
        its own frame stack and command list.
    """

    __slots__ = (
        "_delimiters",
        "_encoding",
        "_import_extension",
        "_max_include_depth",
        "_source",
        "_template_extension",
        "source_path",
    )

    def __init__(
        self,
        source_path: str | Path,
        *,
        source: str | None = None,
        delimiters: Delimiters = DEFAULT_DELIMITERS,
        template_extension: str = DEFAULT_TEMPLATE_EXTENSION,
        import_extension: str = DEFAULT_IMPORT_EXTENSION,
        max_include_depth: int = DEFAULT_MAX_INCLUDE_DEPTH,
        encoding: str = "utf-8",
    ):
        self.source_path = Path(source_path)
        self._source = source
        self._delimiters = delimiters
        self._template_extension = template_extension.lstrip(".")
        self._import_extension = import_extension.lstrip(".")
        self._max_include_depth = max_include_depth
        self._encoding = encoding

    def parse(self) -> CommandSequence:
        """Parse the root template and everything it includes.

        Raises:
            ParseError: Unmatched open delimiter in any template
            DirectiveError: Malformed ``<%-`` directive
            IncludeCycleError: A template includes itself
            MissingFileError: An include or import target does not exist
        """
        source = self._source
        if source is None:
            source = self.source_path.read_text(self._encoding)

        commands: list[Command] = []
        frames = [
            _Frame(
                path=self.source_path,
                spans=iter(self._tokenize(source, self.source_path)),
                chain=(_identity(self.source_path),),
                start=0,
            )
        ]

        while frames:
            frame = frames[-1]
            span = next(frame.spans, None)
            if span is None:
                frames.pop()
                if frames and frames[-1].pending is not None:
                    commands.append(frames[-1].pending)
                    frames[-1].pending = None
                continue

            child = self._process_span(span, frame, commands)
            if child is not None:
                frames.append(child)

        return CommandSequence(tuple(commands), _unique_imports(commands))

    # ─────────────────────────────────────────────────────────────────────────
    # Span classification
    # ─────────────────────────────────────────────────────────────────────────

    def _tokenize(self, source: str, path: Path) -> list[DirectiveSpan]:
        return tokenize(source, filename=path, delimiters=self._delimiters)

    def _process_span(
        self,
        span: DirectiveSpan,
        frame: _Frame,
        commands: list[Command],
    ) -> _Frame | None:
        """Classify one span, appending its commands.

        Returns a new frame when the span is an include that must be
        expanded before the span's own literal is emitted.
        """
        filename = str(frame.path)

        if span.trim_preceding_whitespace and len(commands) > frame.start:
            previous = commands[-1]
            if isinstance(previous, EncodedLiteral):
                commands[-1] = replace(previous, text=strip_trailing_hspace(previous.text))

        literal = None
        if span.literal:
            literal = EncodedLiteral(span.literal, filename=filename, lineno=span.lineno)

        code = span.code
        if code.startswith("-"):
            child = self._file_directive(code[1:], span, frame, commands)
            if child is not None:
                frame.pending = literal
                return child
        elif code.startswith("="):
            commands.append(Output(code[1:], filename=filename, lineno=span.lineno))
        elif code.strip() and not code.lstrip().startswith("#"):
            commands.append(ControlFlow(code, filename=filename, lineno=span.lineno))

        if literal is not None:
            commands.append(literal)
        return None

    def _file_directive(
        self,
        code: str,
        span: DirectiveSpan,
        frame: _Frame,
        commands: list[Command],
    ) -> _Frame | None:
        """Handle ``<%- include("...") -%>`` and ``<%- import("...") -%>``."""
        include = _INCLUDE_RE.search(code)
        if include is not None:
            path = self._resolve(include.group(1), frame, span, self._template_extension)
            identity = _identity(path)
            if identity in frame.chain:
                raise IncludeCycleError(
                    f"Include cycle detected for {path}. Check your include "
                    "statements so that templates do not include each other.",
                    filename=frame.path,
                    lineno=span.lineno,
                )
            # The root template is on the chain but is not itself an include
            if len(frame.chain) > self._max_include_depth:
                raise IncludeCycleError(
                    f"Include depth limit exceeded ({self._max_include_depth} nested "
                    f"includes) while including {path}",
                    filename=frame.path,
                    lineno=span.lineno,
                )

            logger.debug("Including %s from %s:%d", path, frame.path, span.lineno)
            source = path.read_text(self._encoding)
            return _Frame(
                path=path,
                spans=iter(self._tokenize(source, path)),
                chain=(*frame.chain, identity),
                start=len(commands),
            )

        imported = _IMPORT_RE.search(code)
        if imported is not None:
            path = self._resolve(imported.group(1), frame, span, self._import_extension)
            commands.append(Import(path, filename=str(frame.path), lineno=span.lineno))
            return None

        open_ = self._delimiters.open
        raise DirectiveError(
            f"The tag starting with `{open_}-` must contain either "
            f'`include("")` or `import("")` command, have: {code!r}',
            filename=frame.path,
            lineno=span.lineno,
        )

    def _resolve(
        self,
        argument: str,
        frame: _Frame,
        span: DirectiveSpan,
        default_extension: str,
    ) -> Path:
        """Resolve a directive argument relative to the current template.

        The default extension may be omitted: when the path does not exist
        and doesn't already carry that extension, it is retried with the
        extension appended.
        """
        path = frame.path.parent / argument
        if not path.exists() and path.suffix != f".{default_extension}":
            path = path.with_name(f"{path.name}.{default_extension}")
        if not path.exists():
            raise MissingFileError(
                f"File {path} does not exist!",
                filename=frame.path,
                lineno=span.lineno,
            )
        return path


def _identity(path: Path) -> Path:
    """Canonical form of a path for include-cycle comparison."""
    return path.resolve()


def _unique_imports(commands: list[Command]) -> tuple[Path, ...]:
    seen: set[Path] = set()
    imports: list[Path] = []
    for command in commands:
        if isinstance(command, Import):
            identity = _identity(command.path)
            if identity not in seen:
                seen.add(identity)
                imports.append(command.path)
    return tuple(imports)


def parse_file(path: str | Path, **options: object) -> CommandSequence:
    """Parse the template at ``path``. Options are passed to Parser."""
    return Parser(path, **options).parse()  # type: ignore[arg-type]
