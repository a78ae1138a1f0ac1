#!/usr/bin/env python3
"""Build a hello-world kernel module against the running kernel's headers.

Usage:
    python examples/hello_module.py path/to/hello.c
"""

from __future__ import annotations

import platform
import sys
from pathlib import Path

from kmodbuild import (
    BuildConfig,
    KernelModuleBuilder,
    KmodError,
    ModuleBuildTarget,
    PackageDescriptor,
)


def main() -> None:
    if len(sys.argv) < 2:
        raise SystemExit(__doc__)

    release = platform.release()
    headers = Path(f"/usr/src/linux-headers-{release}/include")

    target = ModuleBuildTarget(
        name="hello",
        arch=platform.machine(),
        sources=[Path(arg) for arg in sys.argv[1:]],
        build_dir=Path("build"),
        packages={
            "linux-headers": PackageDescriptor(
                name="linux-headers",
                version=release,
                includedirs=[headers],
            ),
        },
    )

    builder = KernelModuleBuilder(config=BuildConfig.from_env())
    try:
        artifact = builder.build(target)
    except KmodError as exc:
        raise SystemExit(f"error: {exc}") from exc

    print(f"Module: {artifact.path}")
    builder.logger.to_json_lines(Path("build") / "kmodbuild.jsonl")


if __name__ == "__main__":
    main()
