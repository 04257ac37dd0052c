"""Kiln environment: configuration, template loading and errors."""

from kiln.environment.exceptions import (
    BuildError,
    CompileError,
    ContextError,
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
from kiln.environment.core import Environment

__all__ = [
    "BuildError",
    "CompileError",
    "ContextError",
    "DirectiveError",
    "Environment",
    "ErrorCode",
    "IncludeCycleError",
    "LinkError",
    "MissingFileError",
    "ParseError",
    "ProcessError",
    "RenderError",
    "TemplateError",
]
