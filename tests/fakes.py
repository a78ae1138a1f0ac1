"""Filesystem-backed fakes for the kernel toolchain and kernel-headers tree."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from kmodbuild.toolchain.base import ProcessResult


class FakeToolchain:
    """Records invocations and simulates gcc, ld and modpost on the filesystem."""

    def __init__(self, gcc_includedir: Path) -> None:
        self.gcc_includedir = gcc_includedir
        self.calls: list[tuple[str, tuple[str, ...], Path | None]] = []
        self.fail: dict[str, int] = {}
        self.modpost_writes_glue = True

    def kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.calls]

    def count(self, kind: str) -> int:
        return self.kinds().count(kind)

    def argv_for(self, kind: str) -> list[tuple[str, ...]]:
        return [argv for k, argv, _ in self.calls if k == kind]

    def run(
        self,
        argv: Sequence[str],
        *,
        stdin: Path | None = None,
    ) -> ProcessResult:
        command = tuple(str(arg) for arg in argv)
        kind = self._classify(command)
        self.calls.append((kind, command, stdin))
        if kind in self.fail:
            return ProcessResult(
                argv=command,
                returncode=self.fail[kind],
                stderr=f"{kind}: simulated failure",
            )
        if kind == "probe":
            return ProcessResult(
                argv=command,
                returncode=0,
                stderr=(
                    'ignoring nonexistent directory "/nonexistent/include-fixed"\n'
                    '#include "..." search starts here:\n'
                    "#include <...> search starts here:\n"
                    f" {self.gcc_includedir}\n"
                    " /usr/include\n"
                    "End of search list.\n"
                ),
            )
        if kind == "modpost":
            assert stdin is not None
            for line in stdin.read_text(encoding="utf-8").splitlines():
                if line and self.modpost_writes_glue:
                    Path(line).with_suffix(".mod.c").write_text(
                        "#include <linux/module.h>\n", encoding="utf-8"
                    )
            symvers = Path(command[command.index("-o") + 1])
            symvers.write_text("", encoding="utf-8")
            return ProcessResult(argv=command, returncode=0)

        output = Path(command[command.index("-o") + 1])
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(b"\x7fELF" + kind.encode())
        return ProcessResult(argv=command, returncode=0)

    @staticmethod
    def _classify(argv: tuple[str, ...]) -> str:
        tool = Path(argv[0]).name
        if tool == "modpost":
            return "modpost"
        if tool.endswith("ld"):
            return "ld"
        if "-Wp,-v" in argv:
            return "probe"
        if argv[-1].endswith(".mod.c"):
            return "glue"
        return "cc"


def make_headers_tree(
    root: Path,
    *,
    version: str = "5.15.0",
    marker: str | None = "generated/autoconf.h",
    with_tools: bool = True,
) -> Path:
    """Create a minimal linux-headers tree and return its include directory."""
    sdk_dir = root / f"linux-headers-{version}"
    include_dir = sdk_dir / "include"
    (include_dir / "linux").mkdir(parents=True)
    (include_dir / "linux" / "kconfig.h").write_text("", encoding="utf-8")
    (include_dir / "linux" / "compiler_types.h").write_text("", encoding="utf-8")
    if marker is not None:
        marker_path = include_dir / marker
        marker_path.parent.mkdir(parents=True, exist_ok=True)
        marker_path.write_text("", encoding="utf-8")
    if with_tools:
        (sdk_dir / "scripts" / "mod").mkdir(parents=True)
        (sdk_dir / "scripts" / "mod" / "modpost").write_text("", encoding="utf-8")
        (sdk_dir / "scripts" / "module.lds").write_text("", encoding="utf-8")
    return include_dir
