"""Typed interfaces for spawning compilers, linkers and kernel build tools."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True, slots=True)
class ProcessResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined diagnostics, stdout first."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class ToolRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        *,
        stdin: Path | None = None,
    ) -> ProcessResult:
        """Run *argv* to completion and capture its output.

        Raises ``OSError`` when the executable cannot be spawned.
        """
