"""Kiln parser: directive spans → CommandSequence."""

from kiln.parser.core import (
    DEFAULT_IMPORT_EXTENSION,
    DEFAULT_MAX_INCLUDE_DEPTH,
    DEFAULT_TEMPLATE_EXTENSION,
    Parser,
    parse_file,
)

__all__ = [
    "DEFAULT_IMPORT_EXTENSION",
    "DEFAULT_MAX_INCLUDE_DEPTH",
    "DEFAULT_TEMPLATE_EXTENSION",
    "Parser",
    "parse_file",
]
