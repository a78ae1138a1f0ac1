"""Build session configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from kmodbuild.toolchain.gcc import derive_linker

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class BuildConfig:
    cc: str = "gcc"
    ld: str | None = None
    build_dir: Path = Path("build")
    verbose: bool = False

    @property
    def linker(self) -> str:
        """The configured ``ld``, or the one matching the C compiler."""
        return self.ld if self.ld else derive_linker(self.cc)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BuildConfig:
        env = os.environ if environ is None else environ
        return cls(
            cc=env.get("CC") or "gcc",
            ld=env.get("LD") or None,
            build_dir=Path(env.get("KMODBUILD_BUILD_DIR") or "build"),
            verbose=env.get("KMODBUILD_VERBOSE", "").strip().lower() in _TRUTHY,
        )
