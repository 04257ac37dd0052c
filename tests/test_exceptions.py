"""Tests for error types and their messages."""

from __future__ import annotations

import pytest

from kiln import (
    BuildError,
    CompileError,
    DirectiveError,
    ErrorCode,
    IncludeCycleError,
    LinkError,
    MissingFileError,
    ParseError,
    ProcessError,
    RenderError,
    TemplateError,
)


class TestLocation:
    """``path:line Error: message`` formatting."""

    def test_located(self) -> None:
        error = MissingFileError("File b.kiln does not exist!", filename="a.kiln", lineno=3)
        assert str(error) == "a.kiln:3 Error: File b.kiln does not exist!"
        assert error.location == "a.kiln:3"

    def test_unlocated(self) -> None:
        error = CompileError("main.py: SyntaxError")
        assert str(error) == "main.py: SyntaxError"
        assert error.location is None

    def test_format_compact(self) -> None:
        error = IncludeCycleError("Include cycle detected", filename="b.kiln", lineno=1)
        assert error.format_compact() == "KILN-PAR-003: Include cycle detected\n  --> b.kiln:1"


class TestHierarchy:
    @pytest.mark.parametrize(
        ("error_type", "code"),
        [
            (ParseError, ErrorCode.UNMATCHED_DELIMITER),
            (DirectiveError, ErrorCode.INVALID_DIRECTIVE),
            (IncludeCycleError, ErrorCode.INCLUDE_CYCLE),
            (MissingFileError, ErrorCode.FILE_NOT_FOUND),
            (CompileError, ErrorCode.COMPILE_FAILED),
            (LinkError, ErrorCode.LINK_FAILED),
        ],
    )
    def test_codes(self, error_type: type[TemplateError], code: ErrorCode) -> None:
        assert error_type("x").code is code
        assert issubclass(error_type, TemplateError)

    def test_build_errors(self) -> None:
        assert issubclass(CompileError, BuildError)
        assert issubclass(LinkError, BuildError)
        assert LinkError("ld: boom").diagnostics == "ld: boom"

    def test_categories(self) -> None:
        assert ErrorCode.INCLUDE_CYCLE.category == "parser"
        assert ErrorCode.FILE_NOT_FOUND.category == "template"
        assert ErrorCode.LINK_FAILED.category == "build"
        assert ErrorCode.RENDER_FAILED.category == "runtime"

    def test_process_error(self) -> None:
        error = ProcessError("prog terminated by SIGKILL", stderr="partial", command=["prog"])
        assert error.code is ErrorCode.PROCESS_FAILED
        assert str(error) == "prog terminated by SIGKILL\npartial"
        assert error.command == ["prog"]

    def test_render_error(self) -> None:
        error = RenderError("page.kiln", "error: NameError: x")
        assert str(error) == "page.kiln: error: NameError: x"
        assert error.stderr == "error: NameError: x"
        assert error.source_path == "page.kiln"
