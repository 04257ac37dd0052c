"""Exceptions for the Kiln template compiler.

Exception Hierarchy:
TemplateError (base)
├── ParseError                # Unmatched open delimiter
├── DirectiveError            # Malformed file directive or block structure
├── IncludeCycleError         # Template includes itself (directly or not)
├── MissingFileError          # include/import target does not exist
├── BuildError                # External toolchain reported diagnostics
│   ├── CompileError          # Compiler wrote to stderr
│   └── LinkError             # Linker wrote to stderr
├── ProcessError              # Subprocess terminated abnormally / timed out
├── RenderError               # Generated program wrote to stderr
└── ContextError              # Render context cannot be serialized

Location-carrying errors render as ``path:line Error: message`` so they can
be pasted straight into an editor's "go to" prompt:

    ```
    templates/page.kiln:3 Error: File templates/missing.kiln does not exist!
    ```

Errors detected while resolving an include are annotated with the location
of the include directive. Errors raised from inside the included template
already carry their own location and pass through untouched.

"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------


class ErrorCode(Enum):
    """Searchable error codes for Kiln errors.

    Format: KILN-{CATEGORY}-{NUMBER}
    Categories: PAR (parser), TPL (template files), BLD (build), RUN (runtime)
    """

    # Parser errors (KILN-PAR-xxx)
    UNMATCHED_DELIMITER = "KILN-PAR-001"
    INVALID_DIRECTIVE = "KILN-PAR-002"
    INCLUDE_CYCLE = "KILN-PAR-003"

    # Template file errors (KILN-TPL-xxx)
    FILE_NOT_FOUND = "KILN-TPL-001"

    # Build errors (KILN-BLD-xxx)
    COMPILE_FAILED = "KILN-BLD-001"
    LINK_FAILED = "KILN-BLD-002"

    # Runtime errors (KILN-RUN-xxx)
    PROCESS_FAILED = "KILN-RUN-001"
    RENDER_FAILED = "KILN-RUN-002"
    CONTEXT_UNSERIALIZABLE = "KILN-RUN-003"

    @property
    def category(self) -> str:
        """Error category (e.g., 'parser', 'build', 'runtime')."""
        prefix = self.value.split("-")[1]
        return {
            "PAR": "parser",
            "TPL": "template",
            "BLD": "build",
            "RUN": "runtime",
        }.get(prefix, "unknown")


class TemplateError(Exception):
    """Base exception for all Kiln errors.

    Enables broad exception handling around a render:

        >>> try:
        ...     template.render(context)
        ... except TemplateError as e:
        ...     log.error(e.format_compact())

    Attributes:
        message: Error description without location prefix.
        filename: Template path the error refers to, if known.
        lineno: 1-based line number in ``filename``, if known.
        code: ErrorCode for searchable error identification.
    """

    code: ErrorCode | None = None

    def __init__(
        self,
        message: str,
        *,
        filename: str | Path | None = None,
        lineno: int | None = None,
    ):
        self.message = message
        self.filename = str(filename) if filename is not None else None
        self.lineno = lineno
        super().__init__(self._format_message())

    @property
    def location(self) -> str | None:
        """``path:line`` for the error, or None when unlocated."""
        if self.filename is None:
            return None
        if self.lineno is None:
            return self.filename
        return f"{self.filename}:{self.lineno}"

    def _format_message(self) -> str:
        if self.location is None:
            return self.message
        return f"{self.location} Error: {self.message}"

    def format_compact(self) -> str:
        """Format error as a short terminal diagnostic with its code.

        Format::

            KILN-PAR-003: Include cycle detected for a.kiln
              --> templates/b.kiln:1
        """
        parts: list[str] = []
        code_prefix = f"{self.code.value}: " if self.code else ""
        parts.append(f"{code_prefix}{self.message}")
        if self.location is not None:
            parts.append(f"  --> {self.location}")
        return "\n".join(parts)


class ParseError(TemplateError):
    """An open delimiter has no matching close delimiter.

    Always carries the template path and the 1-based line of the offending
    open delimiter.
    """

    code: ErrorCode | None = ErrorCode.UNMATCHED_DELIMITER


class DirectiveError(TemplateError):
    """A directive could not be understood.

    Raised when a ``<%-`` tag contains neither ``include("...")`` nor
    ``import("...")``, and when control-flow blocks are unbalanced
    (an ``end`` with nothing open, or a block left open at end of template).
    """

    code: ErrorCode | None = ErrorCode.INVALID_DIRECTIVE


class IncludeCycleError(TemplateError):
    """A template includes itself, directly or through other templates."""

    code: ErrorCode | None = ErrorCode.INCLUDE_CYCLE


class MissingFileError(TemplateError):
    """A resolved include or import path does not exist."""

    code: ErrorCode | None = ErrorCode.FILE_NOT_FOUND


class BuildError(TemplateError):
    """The external toolchain reported diagnostics.

    The toolchain's error text is kept verbatim in ``message`` (and in
    ``diagnostics``) so compiler output can be shown to the user unchanged.
    """

    @property
    def diagnostics(self) -> str:
        return self.message


class CompileError(BuildError):
    """The compiler wrote to its error stream."""

    code: ErrorCode | None = ErrorCode.COMPILE_FAILED


class LinkError(BuildError):
    """The link step wrote to its error stream."""

    code: ErrorCode | None = ErrorCode.LINK_FAILED


class ProcessError(TemplateError):
    """A subprocess did not terminate normally.

    Covers processes killed by a signal and processes killed after
    exceeding a timeout.

    Attributes:
        reason: Human-readable termination reason.
        stderr: Whatever the process wrote to its error stream.
        command: The argv that was executed.
    """

    code: ErrorCode | None = ErrorCode.PROCESS_FAILED

    def __init__(
        self,
        reason: str,
        *,
        stderr: str = "",
        command: list[str] | None = None,
    ):
        self.reason = reason
        self.stderr = stderr
        self.command = command or []
        message = reason
        if stderr:
            message += f"\n{stderr}"
        super().__init__(message)


class RenderError(TemplateError):
    """The generated program wrote to its error stream.

    Raised even when the program exited successfully: anything on stderr
    means the render cannot be trusted.

    Attributes:
        stderr: Captured error text, verbatim.
    """

    code: ErrorCode | None = ErrorCode.RENDER_FAILED

    def __init__(self, source_path: str | Path, stderr: str):
        self.source_path = str(source_path)
        self.stderr = stderr
        super().__init__(stderr)

    def _format_message(self) -> str:
        return f"{self.source_path}: {self.stderr}"


class ContextError(TemplateError):
    """The render context contains a value the context format cannot carry."""

    code: ErrorCode | None = ErrorCode.CONTEXT_UNSERIALIZABLE
