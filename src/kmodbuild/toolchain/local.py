"""Host toolchain execution via ``subprocess``."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path

from kmodbuild.toolchain.base import ProcessResult

logger = logging.getLogger(__name__)


class SubprocessRunner:
    """Runs host tools to completion, capturing their text output."""

    def run(
        self,
        argv: Sequence[str],
        *,
        stdin: Path | None = None,
    ) -> ProcessResult:
        command = tuple(str(arg) for arg in argv)
        logger.debug("running %s", " ".join(command))
        if stdin is not None:
            with open(stdin, encoding="utf-8") as handle:
                result = subprocess.run(
                    command,
                    stdin=handle,
                    capture_output=True,
                    text=True,
                    check=False,
                )
        else:
            result = subprocess.run(
                command,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                check=False,
            )
        return ProcessResult(
            argv=command,
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )
