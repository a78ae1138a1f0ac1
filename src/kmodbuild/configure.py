"""Load stage: turn a plain target into a kernel module compilation unit."""

from __future__ import annotations

from pathlib import Path

from kmodbuild.arch import COMMON_CFLAGS, feature_flags, resolve_arch_profile
from kmodbuild.errors import IncompatibleRuleError, UnsupportedToolchainError
from kmodbuild.models import (
    LINUX_HEADERS_PACKAGE,
    KernelHeaderSdk,
    ModuleBuildTarget,
    append_unique,
)
from kmodbuild.probe import CompilerProbe
from kmodbuild.toolchain.gcc import is_gcc

MODULE_EXTENSION = ".ko"
DEFAULT_LANGUAGE = "gnu89"
DEFAULT_OPTIMIZE = "faster"
AUTO_IGNORE_FLAGS_POLICY = "check.auto_ignore_flags"

FORBIDDEN_RULES: tuple[str, ...] = (
    "mode.release",
    "mode.debug",
    "mode.releasedbg",
    "mode.minsizerel",
    "mode.asan",
    "mode.tsan",
)


def ensure_gcc(compiler: str, *, target: str) -> None:
    if not is_gcc(compiler):
        raise UnsupportedToolchainError(
            "Linux kernel modules must be compiled with gcc.",
            hint="Set CC to a gcc driver matching the kernel's compiler.",
            context={"operation": "load", "target": target, "compiler": compiler},
        )


def ensure_no_mode_rules(target: ModuleBuildTarget) -> None:
    for rule in FORBIDDEN_RULES:
        if rule in target.rules:
            raise IncompatibleRuleError(
                f"Target {target.name!r} is a linux kernel module and cannot use rule {rule!r}.",
                hint="Remove build-mode rules from kernel module targets.",
                context={"operation": "load", "target": target.name, "rule": rule},
            )


def module_include_dirs(sdk: KernelHeaderSdk, arch_subdir: Path) -> list[Path]:
    """Kernel header search path, in the order kbuild passes it."""
    archdir = sdk.sdk_dir / arch_subdir
    include_dir = sdk.include_dir
    return [
        archdir / "include",
        archdir / "include" / "generated",
        include_dir,
        archdir / "include" / "uapi",
        archdir / "include" / "generated" / "uapi",
        include_dir / "uapi",
        include_dir / "generated" / "uapi",
    ]


def forced_includes(sdk: KernelHeaderSdk) -> list[Path]:
    return [
        sdk.include_dir / "linux" / "kconfig.h",
        sdk.include_dir / "linux" / "compiler_types.h",
    ]


def _strip_package_includedirs(target: ModuleBuildTarget) -> None:
    package = target.package(LINUX_HEADERS_PACKAGE)
    if package is None:
        return
    contributed = {Path(d) for d in (*package.includedirs, *package.sysincludedirs)}
    target.include_dirs[:] = [d for d in target.include_dirs if Path(d) not in contributed]
    target.sys_include_dirs[:] = [
        d for d in target.sys_include_dirs if Path(d) not in contributed
    ]
    package.clear_includedirs()


def configure_target(
    target: ModuleBuildTarget,
    sdk: KernelHeaderSdk,
    *,
    compiler: str,
    probe: CompilerProbe | None = None,
) -> ModuleBuildTarget:
    """Apply kernel module compilation settings to *target* in place.

    Nothing is spawned before the toolchain, rules and architecture have been
    validated; the only subprocess is the (memoized) compiler probe.
    """
    ensure_gcc(compiler, target=target.name)
    ensure_no_mode_rules(target)
    profile = resolve_arch_profile(target.arch)

    # The link step is ours, not the generic binary linker's.
    target.kind = "binary"
    target.extension = MODULE_EXTENSION
    target.custom_link = True
    target.linux_headers = sdk
    target.arch_profile = profile

    _strip_package_includedirs(target)

    if probe is not None:
        gcc_includedir = probe.include_dir(compiler)
        if gcc_includedir is not None:
            append_unique(target.sys_include_dirs, gcc_includedir)
    append_unique(target.include_dirs, *module_include_dirs(sdk, Path(profile.arch_subdir)))
    append_unique(target.forced_includes, *forced_includes(sdk))

    append_unique(target.defines, "__KERNEL__", "MODULE", f'KBUILD_MODNAME="{target.name}"')
    for source in target.sources:
        source_path = Path(source)
        file_defines = target.file_defines.setdefault(source_path, [])
        append_unique(file_defines, f'KBUILD_BASENAME="{source_path.stem}"')

    target.policies[AUTO_IGNORE_FLAGS_POLICY] = False

    target.optimize = DEFAULT_OPTIMIZE
    if target.language is None:
        target.language = DEFAULT_LANGUAGE
    append_unique(target.cflags, *COMMON_CFLAGS, *profile.cflags)
    append_unique(target.defines, *profile.defines)

    extra_cflags, extra_defines = feature_flags(fentry=target.fentry, asan=target.asan)
    append_unique(target.cflags, *extra_cflags)
    append_unique(target.defines, *extra_defines)
    return target
