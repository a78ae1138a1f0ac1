"""GCC/binutils specifics: compiler identity, linker derivation, compile argv."""

from __future__ import annotations

import re
from pathlib import Path, PurePath

from kmodbuild.models import ModuleBuildTarget

_GCC_NAME = re.compile(r"^(?:.+-)?gcc(?:-\d+(?:\.\d+)*)?$")
_DRIVER_SUFFIX = re.compile(r"(?:gcc|g\+\+)$")

OPTIMIZE_FLAGS: dict[str, str] = {
    "none": "-O0",
    "fast": "-O1",
    "faster": "-O2",
    "fastest": "-O3",
    "smallest": "-Os",
}


def is_gcc(compiler: str) -> bool:
    """Whether *compiler* names the GNU C compiler driver."""
    return bool(_GCC_NAME.match(PurePath(compiler).name))


def derive_linker(tool: str) -> str:
    """Map a compiler driver used as linker onto the matching ``ld``.

    ``x86_64-linux-gnu-gcc`` becomes ``x86_64-linux-gnu-ld``; anything that
    does not end in ``gcc``/``g++`` is returned unchanged.
    """
    return _DRIVER_SUFFIX.sub("ld", tool)


def compile_argv(
    compiler: str,
    target: ModuleBuildTarget,
    source: Path,
    output: Path,
) -> tuple[str, ...]:
    argv: list[str] = [compiler, "-c"]
    for header in target.forced_includes:
        argv.extend(["-include", str(header)])
    if target.optimize is not None:
        argv.append(OPTIMIZE_FLAGS[target.optimize])
    if target.language is not None:
        argv.append(f"-std={target.language}")
    argv.extend(target.cflags)
    for directory in target.sys_include_dirs:
        argv.extend(["-isystem", str(directory)])
    argv.extend(f"-I{directory}" for directory in target.include_dirs)
    argv.extend(f"-D{define}" for define in target.defines)
    argv.extend(f"-D{define}" for define in target.file_defines.get(Path(source), ()))
    argv.extend(["-o", str(output), str(source)])
    return tuple(argv)
