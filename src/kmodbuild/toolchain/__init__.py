"""Toolchain abstraction used to spawn gcc, ld and modpost."""

from .base import ProcessResult, ToolRunner
from .gcc import compile_argv, derive_linker, is_gcc
from .local import SubprocessRunner

__all__ = [
    "ProcessResult",
    "SubprocessRunner",
    "ToolRunner",
    "compile_argv",
    "derive_linker",
    "is_gcc",
]
