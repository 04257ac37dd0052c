"""Kiln: compile text templates into standalone programs.

A Kiln template is text with embedded Python directives. Kiln generates a
Python program from the template, builds it into an executable with an
external toolchain, caches the executable by content, and runs it against
a data context to produce the rendered text.

Quickstart:
    >>> from kiln import Environment
    >>> env = Environment()
    >>> template = env.from_string("Hello <%= name %>!")
    >>> template.render(name="World")
    'Hello World!'

File-based templates with a binary cache:
    >>> env = Environment(cache_dir=".kiln-cache/templates")
    >>> env.render("templates/models.kiln", {"types": types})

Architecture:
Template Source → Lexer → Parser → Commands → Code Generator → Build → Run

Pipeline stages:
1. **Lexer**: Splits source into directive spans, reads trim markers
2. **Parser**: Classifies directives, expands includes, collects imports
3. **Code Generator**: Turns commands into one Python program
4. **Build**: Compiles and links the program (cached by content hash)
5. **Run**: Serializes the context, runs the program, captures its output

Directive Syntax:
    <%= expr %>                 output an expression
    <% code %>                  control flow / raw code (``<% end %>`` closes blocks)
    <%# comment %>              nothing
    <%- include("file") -%>     inline another template
    <%- import("file") -%>      compile a Python file alongside the program
    -%>  _%>  <%_               whitespace control

"""

from kiln._types import (
    Command,
    CommandSequence,
    CommandType,
    ControlFlow,
    EncodedLiteral,
    Import,
    Output,
)
from kiln.environment import (
    BuildError,
    CompileError,
    ContextError,
    DirectiveError,
    Environment,
    ErrorCode,
    IncludeCycleError,
    LinkError,
    MissingFileError,
    ParseError,
    ProcessError,
    RenderError,
    TemplateError,
)
from kiln.build import Artifact, BuildOrchestrator, Toolchain
from kiln.cache import BinaryCache, cache_key
from kiln.compiler import CodeGenerator, GeneratedProgram
from kiln.context import ContextSerializable
from kiln.lexer import Delimiters, DirectiveSpan, tokenize
from kiln.parser import Parser, parse_file
from kiln.runner import ExecutionRunner, ProcessResult, run_command
from kiln.template import Template

__version__ = "0.1.0"

__all__ = [
    "Artifact",
    "BinaryCache",
    "BuildError",
    "BuildOrchestrator",
    "CodeGenerator",
    "Command",
    "CommandSequence",
    "CommandType",
    "CompileError",
    "ContextError",
    "ContextSerializable",
    "ControlFlow",
    "Delimiters",
    "DirectiveError",
    "DirectiveSpan",
    "EncodedLiteral",
    "Environment",
    "ErrorCode",
    "ExecutionRunner",
    "GeneratedProgram",
    "Import",
    "IncludeCycleError",
    "LinkError",
    "MissingFileError",
    "Output",
    "ParseError",
    "Parser",
    "ProcessError",
    "ProcessResult",
    "RenderError",
    "Template",
    "TemplateError",
    "Toolchain",
    "__version__",
    "cache_key",
    "parse_file",
    "run_command",
    "tokenize",
]
