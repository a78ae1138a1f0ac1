"""Command line entrypoint.

Usage:
    kmodbuild build hello hello.c util.c \
        --headers /usr/src/linux-headers-5.15.0/include --kernel-version 5.15.0
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

from kmodbuild.arch import supported_architectures
from kmodbuild.builder import KernelModuleBuilder
from kmodbuild.config import BuildConfig
from kmodbuild.errors import KmodError
from kmodbuild.models import LINUX_HEADERS_PACKAGE, ModuleBuildTarget, PackageDescriptor


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kmodbuild",
        description="Build out-of-tree Linux kernel modules without kbuild",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    build_p = sub.add_parser("build", help="Compile and link a kernel module")
    build_p.add_argument("name", help="Module name (KBUILD_MODNAME)")
    build_p.add_argument("sources", nargs="+", type=Path, help="C source files")
    build_p.add_argument(
        "--headers",
        required=True,
        type=Path,
        help="Include directory of a configured linux-headers tree",
    )
    build_p.add_argument("--kernel-version", required=True, help="Kernel headers version")
    build_p.add_argument(
        "--arch",
        default="x86_64",
        help="Target architecture: " + ", ".join(supported_architectures()),
    )
    build_p.add_argument("--cc", help="C compiler (default: $CC or gcc)")
    build_p.add_argument("--ld", help="Linker (default: derived from the compiler)")
    build_p.add_argument("--build-dir", type=Path, help="Build directory")
    build_p.add_argument("--fentry", action="store_true", help="Enable -mfentry instrumentation")
    build_p.add_argument("--asan", action="store_true", help="Enable KASAN instrumentation")
    build_p.add_argument("--verbose", action="store_true", help="Print spawned commands")
    build_p.add_argument("--log-json", type=Path, help="Write structured logs as JSON lines")
    return parser


def cmd_build(args: argparse.Namespace) -> int:
    config = BuildConfig.from_env()
    overrides: dict[str, object] = {}
    if args.cc:
        overrides["cc"] = args.cc
    if args.ld:
        overrides["ld"] = args.ld
    if args.build_dir:
        overrides["build_dir"] = args.build_dir
    if args.verbose:
        overrides["verbose"] = True
    config = replace(config, **overrides)  # type: ignore[arg-type]

    logging.basicConfig(
        level=logging.DEBUG if config.verbose else logging.INFO,
        format="%(message)s",
    )

    target = ModuleBuildTarget(
        name=args.name,
        arch=args.arch,
        sources=list(args.sources),
        build_dir=config.build_dir,
        packages={
            LINUX_HEADERS_PACKAGE: PackageDescriptor(
                name=LINUX_HEADERS_PACKAGE,
                version=args.kernel_version,
                includedirs=[args.headers],
            ),
        },
        fentry=args.fentry,
        asan=args.asan,
    )
    builder = KernelModuleBuilder(config=config)
    try:
        artifact = builder.build(target)
    except KmodError as exc:
        print(f"error: {exc}", file=sys.stderr)
        if config.verbose and exc.output:
            print(exc.output, file=sys.stderr)
        return 1
    finally:
        if args.log_json:
            builder.logger.to_json_lines(args.log_json)

    if artifact.relinked:
        print(f"Built {artifact.path}")
    else:
        print(f"{artifact.path} is up to date")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "build":
        return cmd_build(args)
    parser.error(f"unknown command {args.command!r}")
    return 2
