"""Architecture profiles: kernel ABI compiler flags and linker format flags.

The flag sets mirror what the kernel's own build passes for out-of-tree
modules. They are observed from kbuild and must be revalidated when the
target kernel series changes.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath

from kmodbuild.errors import UnsupportedArchitectureError

COMMON_CFLAGS: tuple[str, ...] = (
    "-nostdinc",
    "-fno-strict-aliasing",
    "-fno-common",
    "-fshort-wchar",
    "-fno-PIE",
    "-falign-jumps=1",
    "-falign-loops=1",
    "-fno-asynchronous-unwind-tables",
    "-fno-jump-tables",
    "-fno-delete-null-pointer-checks",
    "-fno-reorder-blocks",
    "-fno-ipa-cp-clone",
    "-fno-partial-inlining",
    "-fstack-protector-strong",
    "-fno-inline-functions-called-once",
    "-falign-functions=32",
    "-fno-strict-overflow",
    "-fno-stack-check",
    "-fconserve-stack",
)

X86_CFLAGS: tuple[str, ...] = (
    "-mno-sse",
    "-mno-mmx",
    "-mno-sse2",
    "-mno-3dnow",
    "-mno-avx",
    "-mno-80387",
    "-mno-fp-ret-in-387",
    "-mpreferred-stack-boundary=3",
    "-mskip-rax-setup",
    "-mtune=generic",
    "-mno-red-zone",
    "-mcmodel=kernel",
    "-mindirect-branch=thunk-extern",
    "-mindirect-branch-register",
    "-mrecord-mcount",
    "-fmacro-prefix-map=./=",
    "-fcf-protection=none",
    "-fno-allow-store-data-races",
)

ARM_CFLAGS: tuple[str, ...] = (
    "-mbig-endian",
    "-mabi=aapcs-linux",
    "-mfpu=vfp",
    "-marm",
    "-march=armv6k",
    "-mtune=arm1136j-s",
    "-msoft-float",
    "-Uarm",
)

ARM64_CFLAGS: tuple[str, ...] = (
    "-mlittle-endian",
    "-mgeneral-regs-only",
    "-mabi=lp64",
)

FENTRY_CFLAGS: tuple[str, ...] = ("-mfentry",)
FENTRY_DEFINES: tuple[str, ...] = ("CC_USING_FENTRY",)

KASAN_SHADOW_OFFSET = "0xdffffc0000000000"
KASAN_CFLAGS: tuple[str, ...] = (
    "-fsanitize=kernel-address",
    f"-fasan-shadow-offset={KASAN_SHADOW_OFFSET}",
    "-fsanitize-coverage=trace-pc",
    "-fsanitize-coverage=trace-cmp",
    "--param=asan-globals=1",
    "--param=asan-instrumentation-with-call-threshold=0",
    "--param=asan-stack=1",
    "--param=asan-instrument-allocas=1",
)


@dataclass(frozen=True, slots=True)
class ArchProfile:
    name: str
    arch_subdir: PurePosixPath
    cflags: tuple[str, ...]
    defines: tuple[str, ...]
    partial_link_args: tuple[str, ...]
    final_link_args: tuple[str, ...]


ARCH_PROFILES: dict[str, ArchProfile] = {
    "x86_64": ArchProfile(
        name="x86_64",
        arch_subdir=PurePosixPath("arch/x86"),
        cflags=X86_CFLAGS,
        defines=("CONFIG_X86_X32_ABI",),
        partial_link_args=("-m", "elf_x86_64"),
        final_link_args=("-m", "elf_x86_64"),
    ),
    "i386": ArchProfile(
        name="i386",
        arch_subdir=PurePosixPath("arch/x86"),
        cflags=X86_CFLAGS,
        defines=("CONFIG_X86_X32_ABI",),
        partial_link_args=("-m", "elf_i386"),
        final_link_args=("-m", "elf_i386"),
    ),
    "arm": ArchProfile(
        name="arm",
        arch_subdir=PurePosixPath("arch/arm"),
        cflags=ARM_CFLAGS,
        defines=("__LINUX_ARM_ARCH__=6",),
        partial_link_args=("-EB",),
        final_link_args=("-EB", "--be8"),
    ),
    "arm64": ArchProfile(
        name="arm64",
        arch_subdir=PurePosixPath("arch/arm64"),
        cflags=ARM64_CFLAGS,
        defines=(),
        partial_link_args=("-EL", "-maarch64elf"),
        final_link_args=("-EL", "-maarch64elf"),
    ),
}

ARCH_ALIASES: dict[str, str] = {
    "x86_64": "x86_64",
    "i386": "i386",
    "x86": "i386",
    "arm": "arm",
    "armv7": "arm",
    "arm64": "arm64",
    "arm64-v8a": "arm64",
    "aarch64": "arm64",
}


def supported_architectures() -> tuple[str, ...]:
    return tuple(sorted(ARCH_ALIASES))


def resolve_arch_profile(arch: str) -> ArchProfile:
    canonical = ARCH_ALIASES.get(arch)
    if canonical is None:
        raise UnsupportedArchitectureError(
            f"Unsupported architecture for linux kernel modules: {arch!r}.",
            hint=f"Use one of: {', '.join(supported_architectures())}.",
            context={"operation": "resolve_arch_profile", "arch": arch},
        )
    return ARCH_PROFILES[canonical]


def feature_flags(*, fentry: bool, asan: bool) -> tuple[tuple[str, ...], tuple[str, ...]]:
    """Return the ``(cflags, defines)`` contributed by optional features."""
    cflags: list[str] = []
    defines: list[str] = []
    if fentry:
        cflags.extend(FENTRY_CFLAGS)
        defines.extend(FENTRY_DEFINES)
    if asan:
        cflags.extend(KASAN_CFLAGS)
    return tuple(cflags), tuple(defines)
