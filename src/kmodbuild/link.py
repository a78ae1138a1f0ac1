"""Link stage: emulate kbuild's module finalization outside of kbuild.

The pipeline turns the compiled objects of one target into ``<name>.ko``::

    1. ld -r                      objects      -> <name>.o
    2. module descriptor          objects      -> <name>.mod
    3. command stubs              objects      -> .<obj>.cmd
    4. modpost < modules.order    <name>.o     -> <name>.mod.c, Module.symvers
    5. cc -c                      <name>.mod.c -> <name>.mod.o
    6. ld -r -T module.lds        <name>.o, <name>.mod.o -> <name>.ko

Every intermediate file lives in a scratch directory owned by the target, so
different targets can be linked concurrently.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path

from kmodbuild.arch import ArchProfile
from kmodbuild.errors import ConfigurationError, LinkStageError, MissingToolError
from kmodbuild.models import KernelHeaderSdk, ModuleBuildTarget
from kmodbuild.observability import StructuredLogger
from kmodbuild.toolchain.base import ProcessResult, ToolRunner
from kmodbuild.toolchain.gcc import compile_argv

MODPOST_ARGS: tuple[str, ...] = ("-m", "-a", "-o", "{symvers}", "-e", "-N", "-T", "-")


class LinkStage(IntEnum):
    PARTIAL_LINK = 1
    MODULE_DESCRIPTOR = 2
    COMMAND_STUBS = 3
    MODPOST = 4
    GLUE_COMPILE = 5
    FINAL_LINK = 6

    @property
    def label(self) -> str:
        return self.name.lower().replace("_", "-")


def command_stub(object_file: Path) -> Path:
    """``dir/foo.o`` -> ``dir/.foo.o.cmd``."""
    object_file = Path(object_file)
    return object_file.parent / f".{object_file.name}.cmd"


@dataclass(frozen=True, slots=True)
class ModuleLinkArtifacts:
    object_files: tuple[Path, ...]
    scratch_dir: Path
    partial_object: Path
    mod_file: Path
    order_file: Path
    symvers_file: Path
    mod_c: Path
    mod_o: Path
    artifact: Path
    staging_artifact: Path
    depend_file: Path

    @property
    def command_stubs(self) -> tuple[Path, ...]:
        return tuple(command_stub(obj) for obj in self.object_files)

    @classmethod
    def for_target(cls, target: ModuleBuildTarget) -> ModuleLinkArtifacts:
        artifact = target.artifact_path
        scratch_dir = target.object_dir / ".module"
        partial_object = scratch_dir / artifact.with_suffix(".o").name
        return cls(
            object_files=tuple(target.object_files()),
            scratch_dir=scratch_dir,
            partial_object=partial_object,
            mod_file=partial_object.with_suffix(".mod"),
            order_file=scratch_dir / "modules.order",
            symvers_file=scratch_dir / "Module.symvers",
            mod_c=partial_object.with_suffix(".mod.c"),
            mod_o=partial_object.with_suffix(".mod.o"),
            artifact=artifact,
            staging_artifact=artifact.with_name(f"{artifact.name}.tmp"),
            depend_file=(
                target.build_dir / ".deps" / target.name / target.arch / f"{artifact.name}.d"
            ),
        )


def check_module_tools(sdk: KernelHeaderSdk) -> tuple[Path, Path]:
    """Return ``(modpost, module.lds)`` from the SDK tree."""
    if not sdk.modpost.is_file():
        raise MissingToolError(
            "scripts/mod/modpost not found!",
            hint="Run `make modules_prepare` in the kernel tree to build modpost.",
            context={"operation": "link", "path": str(sdk.modpost)},
        )
    if not sdk.linker_script.is_file():
        raise MissingToolError(
            "scripts/module.lds not found!",
            hint="Run `make modules_prepare` in the kernel tree to generate module.lds.",
            context={"operation": "link", "path": str(sdk.linker_script)},
        )
    return sdk.modpost, sdk.linker_script


@dataclass(slots=True)
class ModuleLinkPipeline:
    runner: ToolRunner
    compiler: str
    linker: str
    logger: StructuredLogger | None = None

    def run(self, target: ModuleBuildTarget) -> Path:
        sdk = target.linux_headers
        profile = target.arch_profile
        if sdk is None or profile is None:
            raise ConfigurationError(
                f"Target {target.name!r} has not been loaded as a kernel module.",
                hint="Call configure_target() before linking.",
                context={"operation": "link", "target": target.name},
            )
        modpost, ldscript = check_module_tools(sdk)
        artifacts = ModuleLinkArtifacts.for_target(target)

        try:
            self._partial_link(target, profile, artifacts)
            self._write_module_descriptor(target, artifacts)
            self._write_command_stubs(target, artifacts)
            self._modpost(target, modpost, artifacts)
            self._compile_glue(target, artifacts)
            self._final_link(target, profile, ldscript, artifacts)
            os.replace(artifacts.staging_artifact, artifacts.artifact)
        finally:
            artifacts.staging_artifact.unlink(missing_ok=True)
        return artifacts.artifact

    def _partial_link(
        self, target: ModuleBuildTarget, profile: ArchProfile, artifacts: ModuleLinkArtifacts
    ) -> None:
        stage = LinkStage.PARTIAL_LINK
        self._mkdir(stage, artifacts.scratch_dir)
        argv = (
            self.linker,
            *profile.partial_link_args,
            "-r",
            "-o",
            str(artifacts.partial_object),
            *(str(obj) for obj in artifacts.object_files),
        )
        self._run(stage, target, argv)

    def _write_module_descriptor(
        self, target: ModuleBuildTarget, artifacts: ModuleLinkArtifacts
    ) -> None:
        stage = LinkStage.MODULE_DESCRIPTOR
        content = " ".join(str(obj) for obj in artifacts.object_files) + "\n"
        self._write(stage, artifacts.mod_file, content)
        self._trace(stage, target, f"wrote {artifacts.mod_file}")

    def _write_command_stubs(
        self, target: ModuleBuildTarget, artifacts: ModuleLinkArtifacts
    ) -> None:
        # modpost only checks that these exist.
        stage = LinkStage.COMMAND_STUBS
        for stub in artifacts.command_stubs:
            self._write(stage, stub, "")
        self._trace(stage, target, f"wrote {len(artifacts.command_stubs)} command stubs")

    def _modpost(
        self, target: ModuleBuildTarget, modpost: Path, artifacts: ModuleLinkArtifacts
    ) -> None:
        stage = LinkStage.MODPOST
        self._write(stage, artifacts.order_file, f"{artifacts.partial_object}\n")
        artifacts.mod_c.unlink(missing_ok=True)
        argv = (
            str(modpost),
            *(arg.format(symvers=artifacts.symvers_file) for arg in MODPOST_ARGS),
        )
        result = self._run(stage, target, argv, stdin=artifacts.order_file)
        if not artifacts.mod_c.is_file():
            raise LinkStageError(
                "modpost did not generate the module glue source.",
                stage=stage,
                output=result.output,
                context={"target": target.name, "path": str(artifacts.mod_c)},
            )

    def _compile_glue(self, target: ModuleBuildTarget, artifacts: ModuleLinkArtifacts) -> None:
        argv = compile_argv(self.compiler, target, artifacts.mod_c, artifacts.mod_o)
        self._run(LinkStage.GLUE_COMPILE, target, argv)

    def _final_link(
        self,
        target: ModuleBuildTarget,
        profile: ArchProfile,
        ldscript: Path,
        artifacts: ModuleLinkArtifacts,
    ) -> None:
        stage = LinkStage.FINAL_LINK
        self._mkdir(stage, artifacts.artifact.parent)
        argv = (
            self.linker,
            *profile.final_link_args,
            "-r",
            "--build-id=sha1",
            "-T",
            str(ldscript),
            "-o",
            str(artifacts.staging_artifact),
            str(artifacts.partial_object),
            str(artifacts.mod_o),
        )
        self._run(stage, target, argv)

    def _run(
        self,
        stage: LinkStage,
        target: ModuleBuildTarget,
        argv: Sequence[str],
        *,
        stdin: Path | None = None,
    ) -> ProcessResult:
        self._trace(stage, target, " ".join(argv), level="debug")
        try:
            result = self.runner.run(argv, stdin=stdin)
        except OSError as exc:
            raise LinkStageError(
                f"Cannot run {argv[0]} ({stage.label}).",
                stage=stage,
                output=str(exc),
                context={"target": target.name, "command": " ".join(argv)},
            ) from exc
        if not result.ok:
            raise LinkStageError(
                f"{stage.label} failed with exit code {result.returncode}.",
                stage=stage,
                output=result.output,
                hint="Check the captured tool output for details.",
                context={
                    "target": target.name,
                    "returncode": str(result.returncode),
                    "command": " ".join(argv),
                },
            )
        return result

    def _write(self, stage: LinkStage, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise LinkStageError(
                f"Cannot write {path} ({stage.label}).",
                stage=stage,
                output=str(exc),
                context={"path": str(path)},
            ) from exc

    def _mkdir(self, stage: LinkStage, path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LinkStageError(
                f"Cannot create {path} ({stage.label}).",
                stage=stage,
                output=str(exc),
                context={"path": str(path)},
            ) from exc

    def _trace(
        self, stage: LinkStage, target: ModuleBuildTarget, message: str, *, level: str = "info"
    ) -> None:
        if self.logger is None:
            return
        self.logger.log(
            operation="link",
            target=target.name,
            arch=target.arch,
            stage=stage.label,
            message=message,
            level=level,
        )
