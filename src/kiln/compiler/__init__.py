"""Kiln code generator: CommandSequence → generated program source."""

from kiln.compiler.core import (
    BLOCK_END,
    MAIN_MODULE,
    CodeGenerator,
    GeneratedProgram,
    generate,
)

__all__ = [
    "BLOCK_END",
    "MAIN_MODULE",
    "CodeGenerator",
    "GeneratedProgram",
    "generate",
]
