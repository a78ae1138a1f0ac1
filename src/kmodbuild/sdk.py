"""Kernel-headers SDK lookup from a resolved ``linux-headers`` package."""

from __future__ import annotations

from pathlib import Path

from kmodbuild.errors import ConfigurationError
from kmodbuild.models import LINUX_HEADERS_PACKAGE, KernelHeaderSdk, PackageDescriptor

TREE_MARKER = "linux-headers"
CONFIG_MARKERS: tuple[str, ...] = ("generated/autoconf.h", "config/auto.conf")


def is_configured_kernel(include_dir: Path) -> bool:
    """Whether *include_dir* belongs to a kernel tree that went through ``make *config``."""
    return any((include_dir / marker).is_file() for marker in CONFIG_MARKERS)


def resolve_linux_headers_sdk(package: PackageDescriptor | None) -> KernelHeaderSdk:
    if package is None:
        raise ConfigurationError(
            "The linux-headers package is required to build kernel modules.",
            hint=(
                f"Add a resolved `{LINUX_HEADERS_PACKAGE}` package (built with driver "
                "module support) to the target."
            ),
            context={"operation": "resolve_sdk"},
        )

    candidates = package.includedirs or package.sysincludedirs
    include_dir: Path | None = None
    for directory in candidates:
        if TREE_MARKER in str(directory):
            include_dir = Path(directory)
            break

    if include_dir is None:
        raise ConfigurationError(
            "linux-headers not found in the package include directories.",
            hint="The package must expose an include directory inside a linux-headers tree.",
            context={
                "operation": "resolve_sdk",
                "package": package.name,
                "includedirs": ", ".join(str(d) for d in candidates),
            },
        )

    if not is_configured_kernel(include_dir):
        raise ConfigurationError(
            "Kernel configuration is invalid: "
            "include/generated/autoconf.h or include/config/auto.conf are missing.",
            hint="Run `make olddefconfig && make modules_prepare` in the kernel tree.",
            context={"operation": "resolve_sdk", "include_dir": str(include_dir)},
        )

    return KernelHeaderSdk(
        version=package.version,
        sdk_dir=include_dir.parent,
        include_dir=include_dir,
    )
