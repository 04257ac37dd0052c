"""Tests for program generation."""

from __future__ import annotations

import ast
from pathlib import Path

import pytest
from hypothesis import given, settings

from kiln import CodeGenerator, DirectiveError, Parser
from kiln.compiler import generate

from .strategies import plain_text


def program_for(source: str) -> str:
    sequence = Parser(Path.cwd() / "<string>", source=source).parse()
    return CodeGenerator().generate(sequence).source


def body_of(source: str) -> list[str]:
    """Lines of the generated body (inside the entry point's try)."""
    lines = program_for(source).splitlines()
    start = lines.index("    globals().update(load_context(sys.argv[1]))") + 1
    end = lines.index("except Exception as error:")
    return lines[start:end]


class TestGeneratedProgram:
    """Shape of the generated module."""

    def test_is_valid_python(self) -> None:
        source = program_for("Hello <%= name %>!\n<% for x in xs: %><%= x %><% end %>")
        compile(source, "main.py", "exec")

    def test_empty_template(self) -> None:
        source = program_for("")
        compile(source, "main.py", "exec")
        assert body_of("") == []

    def test_entry_point(self) -> None:
        source = program_for("x")
        assert "from kiln_runtime import" in source
        assert "Log.error(error)" in source
        assert "sys.exit(1)" in source

    def test_literal_and_output(self) -> None:
        assert body_of("Hello <%= name %>!") == [
            "    _write('Hello ')",
            "    _write(_str(name))",
            "    _write('!')",
        ]

    def test_literal_is_ascii_escaped(self) -> None:
        body = body_of("caf\u00e9 \"'\\\n")
        assert len(body) == 1
        assert body[0].isascii()
        literal = body[0].strip()[len("_write(") : -1]
        assert ast.literal_eval(literal) == "caf\u00e9 \"'\\\n"

    def test_multiline_output_expression(self) -> None:
        source = program_for("<%= value  # the value\n%>")
        compile(source, "main.py", "exec")

    def test_identical_templates_identical_programs(self) -> None:
        assert program_for("a<%= b %>") == program_for("a<%= b %>")

    def test_imports_bound_before_body(self, tmp_path: Path) -> None:
        helpers = tmp_path / "helpers.py"
        helpers.write_text("def shout(s):\n    return s.upper()\n")
        main = tmp_path / "main.kiln"
        main.write_text('<%- import("helpers") -%>\n<%= shout("hi") %>')
        program = generate(Parser(main).parse())
        assert program.imports == (helpers,)
        lines = program.source.splitlines()
        import_line = lines.index("    globals().update(_import_names('helpers'))")
        assert import_line < lines.index("    _write(_str(shout(\"hi\")))")


class TestBlocks:
    """Indentation driven by block openers and ``end``."""

    def test_for_loop(self) -> None:
        assert body_of("<% for i in range(3): %><%= i %>,<% end %>") == [
            "    for i in range(3):",
            "        _write(_str(i))",
            "        _write(',')",
        ]

    def test_if_else(self) -> None:
        assert body_of("<% if x: %>a<% else: %>b<% end %>") == [
            "    if x:",
            "        _write('a')",
            "    else:",
            "        _write('b')",
        ]

    def test_elif_chain(self) -> None:
        body = body_of("<% if x: %>a<% elif y: %>b<% else: %>c<% end %>")
        assert body[2] == "    elif y:"
        assert body[4] == "    else:"

    def test_try_except_finally(self) -> None:
        source = program_for(
            "<% try: %><%= risky() %><% except KeyError: %>-<% finally: %>.<% end %>"
        )
        compile(source, "main.py", "exec")

    def test_nested_blocks(self) -> None:
        assert body_of("<% for a in xs: %><% for b in a: %><%= b %><% end %><% end %>") == [
            "    for a in xs:",
            "        for b in a:",
            "            _write(_str(b))",
        ]

    def test_empty_block_gets_pass(self) -> None:
        assert body_of("<% for a in xs: %><% end %>") == [
            "    for a in xs:",
            "        pass",
        ]

    def test_match_case(self) -> None:
        source = program_for(
            "<% match x: %><% case 1: %>one<% end %><% case _: %>other<% end %><% end %>"
        )
        compile(source, "main.py", "exec")

    def test_multiline_code_keeps_relative_indentation(self) -> None:
        body = body_of("<% for a in xs: %><%\n    if a:\n        y = a\n%><% end %>")
        assert body == [
            "    for a in xs:",
            "        if a:",
            "            y = a",
        ]

    def test_block_opener_with_trailing_comment_line(self) -> None:
        body = body_of("<%\nif x:\n    # comment\n%>a<% end %>")
        assert body[-1] == "        _write('a')"

    def test_multiline_code_starting_on_delimiter_line(self) -> None:
        source = "<% if a:\n    b = 1\nelse:\n    b = 2 %><%= b %>"
        assert body_of(source) == [
            "    if a:",
            "        b = 1",
            "    else:",
            "        b = 2",
            "    _write(_str(b))",
        ]
        compile(program_for(source), "main.py", "exec")

    def test_delimiter_line_code_with_indented_continuation(self) -> None:
        assert body_of("<% x = 1\n   y = 2 %>") == ["    x = 1", "    y = 2"]

    def test_block_opener_with_trailing_comment(self) -> None:
        assert body_of("<% for i in range(3):  # loop %><%= i %><% end %>") == [
            "    for i in range(3):  # loop",
            "        _write(_str(i))",
        ]

    def test_colon_inside_comment_does_not_open_block(self) -> None:
        assert body_of("<% x = 1  # note: %>a") == ["    x = 1  # note:", "    _write('a')"]

    def test_colon_in_slice_does_not_open_block(self) -> None:
        assert body_of("<% y = xs[1:] %>a") == ["    y = xs[1:]", "    _write('a')"]

    def test_end_with_comment(self) -> None:
        assert body_of("<% if x: %>a<% end  # if %>")[-1] == "        _write('a')"

    def test_unclosed_block(self, tmp_path: Path) -> None:
        path = tmp_path / "page.kiln"
        sequence = Parser(path, source="\n<% if x: %>a").parse()
        with pytest.raises(DirectiveError) as exc_info:
            generate(sequence)
        assert exc_info.value.lineno == 2
        assert exc_info.value.filename == str(path)
        assert "never closed" in exc_info.value.message

    def test_end_without_block(self) -> None:
        with pytest.raises(DirectiveError):
            program_for("a<% end %>")

    def test_else_without_block(self) -> None:
        with pytest.raises(DirectiveError):
            program_for("<% else: %>")

    def test_generator_is_reusable(self) -> None:
        generator = CodeGenerator()
        with pytest.raises(DirectiveError):
            generator.generate(Parser(Path("a"), source="<% if x: %>").parse())
        program = generator.generate(Parser(Path("a"), source="ok").parse())
        assert "    _write('ok')" in program.source.splitlines()


class TestCompilerProperties:
    @given(source=plain_text)
    @settings(max_examples=100)
    def test_literal_round_trips_through_generated_code(self, source: str) -> None:
        """The generated literal evaluates back to the template text."""
        body = body_of(source)
        if not source:
            assert body == []
            return
        assert len(body) == 1
        assert ast.literal_eval(body[0].strip()[len("_write(") : -1]) == source
