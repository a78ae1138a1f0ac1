"""Build session for out-of-tree Linux kernel modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from pathlib import Path

from kmodbuild.config import BuildConfig
from kmodbuild.configure import configure_target
from kmodbuild.depend import ChangeDetector, mtime
from kmodbuild.errors import CompileError
from kmodbuild.link import ModuleLinkArtifacts, ModuleLinkPipeline
from kmodbuild.models import LINUX_HEADERS_PACKAGE, ModuleArtifact, ModuleBuildTarget
from kmodbuild.observability import StructuredLogger
from kmodbuild.probe import CompilerProbe
from kmodbuild.sdk import resolve_linux_headers_sdk
from kmodbuild.toolchain.base import ToolRunner
from kmodbuild.toolchain.gcc import compile_argv
from kmodbuild.toolchain.local import SubprocessRunner


@dataclass(slots=True)
class KernelModuleBuilder:
    """Loads, compiles and links kernel module targets.

    One builder is one build session: the compiler probe and change detector
    are shared by every target built through it.
    """

    config: BuildConfig = field(default_factory=BuildConfig)
    runner: ToolRunner = field(default_factory=SubprocessRunner)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    probe: CompilerProbe = field(init=False)
    detector: ChangeDetector = field(default_factory=ChangeDetector)

    def __post_init__(self) -> None:
        self.probe = CompilerProbe(self.runner)

    def load(self, target: ModuleBuildTarget) -> ModuleBuildTarget:
        sdk = target.linux_headers
        if sdk is None:
            sdk = resolve_linux_headers_sdk(target.package(LINUX_HEADERS_PACKAGE))
        configure_target(target, sdk, compiler=self.config.cc, probe=self.probe)
        self.logger.log(
            operation="load",
            target=target.name,
            arch=target.arch,
            stage=None,
            message=f"configured against linux-headers {sdk.version}",
            extra={"sdk_dir": str(sdk.sdk_dir)},
        )
        return target

    def compile(self, target: ModuleBuildTarget) -> list[Path]:
        """Compile every source of *target*, skipping up-to-date objects."""
        depend_dir = target.build_dir / ".deps" / target.name / target.arch
        objects: list[Path] = []
        for source in target.sources:
            objectfile = target.object_file(source)
            argv = compile_argv(self.config.cc, target, source, objectfile)
            self.detector.on_changed(
                partial(self._compile_one, target, source, objectfile, argv),
                depend_file=depend_dir / f"{objectfile.relative_to(target.object_dir)}.d",
                files=[source],
                last_mtime=mtime(objectfile),
                values=argv,
            )
            objects.append(objectfile)
        return objects

    def link(self, target: ModuleBuildTarget) -> ModuleArtifact:
        artifacts = ModuleLinkArtifacts.for_target(target)
        pipeline = ModuleLinkPipeline(
            runner=self.runner,
            compiler=self.config.cc,
            linker=self.config.linker,
            logger=self.logger,
        )

        def _link() -> None:
            self.logger.log(
                operation="link",
                target=target.name,
                arch=target.arch,
                stage=None,
                message=f"linking {artifacts.artifact}",
            )
            pipeline.run(target)

        relinked = self.detector.on_changed(
            _link,
            depend_file=artifacts.depend_file,
            files=artifacts.object_files,
            last_mtime=mtime(artifacts.artifact),
        )
        return ModuleArtifact(
            name=target.name,
            arch=target.arch,
            path=artifacts.artifact,
            object_files=artifacts.object_files,
            relinked=relinked,
        )

    def build(self, target: ModuleBuildTarget) -> ModuleArtifact:
        self.load(target)
        self.compile(target)
        return self.link(target)

    def _compile_one(
        self,
        target: ModuleBuildTarget,
        source: Path,
        objectfile: Path,
        argv: tuple[str, ...],
    ) -> None:
        self.logger.log(
            operation="compile",
            target=target.name,
            arch=target.arch,
            stage=None,
            message=f"compiling {source}",
            extra={"command": list(argv)} if self.config.verbose else None,
        )
        objectfile.parent.mkdir(parents=True, exist_ok=True)
        try:
            result = self.runner.run(argv)
        except OSError as exc:
            raise CompileError(
                f"Cannot run {argv[0]}.",
                output=str(exc),
                context={"target": target.name, "source": str(source)},
            ) from exc
        if not result.ok:
            raise CompileError(
                f"Compiling {source} failed.",
                output=result.output,
                hint="Check the compiler diagnostics.",
                context={
                    "target": target.name,
                    "source": str(source),
                    "returncode": str(result.returncode),
                },
            )
