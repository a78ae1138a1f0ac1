"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from kmodbuild.config import BuildConfig
from kmodbuild.models import (
    LINUX_HEADERS_PACKAGE,
    KernelHeaderSdk,
    ModuleBuildTarget,
    PackageDescriptor,
)
from tests.fakes import FakeToolchain, make_headers_tree


@pytest.fixture
def toolchain(tmp_path: Path) -> FakeToolchain:
    gcc_includedir = tmp_path / "gcc" / "include"
    gcc_includedir.mkdir(parents=True)
    return FakeToolchain(gcc_includedir)


@pytest.fixture
def headers_include_dir(tmp_path: Path) -> Path:
    return make_headers_tree(tmp_path / "sdk")


@pytest.fixture
def sdk(headers_include_dir: Path) -> KernelHeaderSdk:
    return KernelHeaderSdk(
        version="5.15.0",
        sdk_dir=headers_include_dir.parent,
        include_dir=headers_include_dir,
    )


@pytest.fixture
def config(tmp_path: Path) -> BuildConfig:
    return BuildConfig(cc="gcc", build_dir=tmp_path / "build")


@pytest.fixture
def make_target(
    tmp_path: Path,
    headers_include_dir: Path,
) -> Callable[..., ModuleBuildTarget]:
    """Factory for fresh targets, as the build graph recreates them on reload."""

    def _make(
        name: str = "module",
        arch: str = "x86_64",
        sources: Sequence[str] = ("main.c", "util.c"),
        **kwargs: object,
    ) -> ModuleBuildTarget:
        source_dir = tmp_path / "src"
        source_dir.mkdir(exist_ok=True)
        paths = []
        for source in sources:
            path = source_dir / source
            path.parent.mkdir(parents=True, exist_ok=True)
            if not path.exists():
                path.write_text("int x;\n", encoding="utf-8")
            paths.append(path)
        package = PackageDescriptor(
            name=LINUX_HEADERS_PACKAGE,
            version="5.15.0",
            includedirs=[headers_include_dir],
        )
        return ModuleBuildTarget(
            name=name,
            arch=arch,
            sources=paths,
            build_dir=tmp_path / "build",
            packages={LINUX_HEADERS_PACKAGE: package},
            **kwargs,  # type: ignore[arg-type]
        )

    return _make
