"""Core typed dataclasses for kernel-headers SDKs and module build targets."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kmodbuild.arch import ArchProfile

LINUX_HEADERS_PACKAGE = "linux-headers"


@dataclass(frozen=True, slots=True)
class KernelHeaderSdk:
    version: str
    sdk_dir: Path
    include_dir: Path

    @property
    def modpost(self) -> Path:
        return self.sdk_dir / "scripts" / "mod" / "modpost"

    @property
    def linker_script(self) -> Path:
        return self.sdk_dir / "scripts" / "module.lds"


@dataclass(slots=True)
class PackageDescriptor:
    """A resolved dependency as handed over by the package system."""

    name: str
    version: str
    includedirs: list[Path] = field(default_factory=list)
    sysincludedirs: list[Path] = field(default_factory=list)

    def clear_includedirs(self) -> None:
        self.includedirs = []
        self.sysincludedirs = []


@dataclass(slots=True)
class ModuleBuildTarget:
    """Mutable build descriptor for one loadable kernel module.

    Created by the caller, mutated only by :func:`kmodbuild.configure.configure_target`
    and read-only afterwards.
    """

    name: str
    arch: str
    sources: list[Path] = field(default_factory=list)
    build_dir: Path = Path("build")
    packages: dict[str, PackageDescriptor] = field(default_factory=dict)
    rules: set[str] = field(default_factory=set)
    fentry: bool = False
    asan: bool = False

    # Populated by the load stage.
    kind: str = "binary"
    extension: str = ""
    custom_link: bool = False
    language: str | None = None
    optimize: str | None = None
    include_dirs: list[Path] = field(default_factory=list)
    sys_include_dirs: list[Path] = field(default_factory=list)
    forced_includes: list[Path] = field(default_factory=list)
    defines: list[str] = field(default_factory=list)
    cflags: list[str] = field(default_factory=list)
    file_defines: dict[Path, list[str]] = field(default_factory=dict)
    policies: dict[str, bool] = field(default_factory=dict)
    linux_headers: KernelHeaderSdk | None = None
    arch_profile: ArchProfile | None = None

    @property
    def target_dir(self) -> Path:
        return self.build_dir / self.arch

    @property
    def artifact_path(self) -> Path:
        return self.target_dir / f"{self.name}{self.extension}"

    @property
    def object_dir(self) -> Path:
        return self.build_dir / ".objs" / self.name / self.arch

    @property
    def source_root(self) -> Path | None:
        """Deepest directory holding every source, or ``None`` when there is none."""
        parents = [str(Path(source).parent) for source in self.sources]
        if not parents:
            return None
        try:
            return Path(os.path.commonpath(parents))
        except ValueError:
            # absolute and relative sources mixed
            return None

    def object_file(self, source: Path) -> Path:
        """``<root>/drivers/foo.c`` -> ``<object_dir>/drivers/foo.o``.

        Objects mirror the layout of the sources below :attr:`source_root`, so
        same-named sources in different directories get distinct objects.
        """
        source = Path(source)
        root = self.source_root
        if root is not None and source.is_relative_to(root):
            relative = source.relative_to(root).with_suffix(".o")
        else:
            relative = Path(f"{source.stem}.o")
        return self.object_dir / relative

    def object_files(self) -> list[Path]:
        return [self.object_file(source) for source in self.sources]

    def package(self, name: str) -> PackageDescriptor | None:
        return self.packages.get(name)


@dataclass(frozen=True, slots=True)
class ModuleArtifact:
    name: str
    arch: str
    path: Path
    object_files: tuple[Path, ...] = ()
    relinked: bool = True


def append_unique(values: list, *items: object) -> None:
    """Append *items* to *values*, skipping those already present."""
    for item in items:
        if item not in values:
            values.append(item)
