"""Discovery of the compiler's built-in system include directory.

Kernel sources are compiled with ``-nostdinc`` but still need the compiler's
own headers (``stdarg.h`` and friends). GCC prints its search list with::

    $ gcc -E -Wp,-v -xc /dev/null
    ignoring nonexistent directory "/usr/local/include/x86_64-linux-gnu"
    #include "..." search starts here:
    #include <...> search starts here:
     /usr/lib/gcc/x86_64-linux-gnu/10/include        <-- wanted
     /usr/local/include
     /usr/include
    End of search list.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from kmodbuild.toolchain.base import ToolRunner

logger = logging.getLogger(__name__)


def parse_search_list(output: str) -> Path | None:
    for raw in output.splitlines():
        line = raw.strip()
        if line.startswith("End"):
            break
        if line and os.path.isdir(line):
            return Path(line)
    return None


class CompilerProbe:
    """Compute-once resolver for the compiler's system include directory.

    One instance is owned by a build session and shared by all targets.
    Lookups are memoized per compiler, and a failed probe is cached too.
    """

    def __init__(self, runner: ToolRunner) -> None:
        self._runner = runner
        self._lock = threading.Lock()
        self._cache: dict[str, Path | None] = {}

    def include_dir(self, compiler: str) -> Path | None:
        with self._lock:
            if compiler not in self._cache:
                self._cache[compiler] = self._probe(compiler)
            return self._cache[compiler]

    def _probe(self, compiler: str) -> Path | None:
        argv = (compiler, "-E", "-Wp,-v", "-xc", os.devnull)
        try:
            result = self._runner.run(argv)
        except OSError as exc:
            logger.warning("cannot probe %s for its include directory: %s", compiler, exc)
            return None
        if not result.ok:
            logger.warning("%s exited with %d while probing include directories",
                           compiler, result.returncode)
            return None
        includedir = parse_search_list(result.output)
        if includedir is None:
            logger.debug("no system include directory found in %s output", compiler)
        return includedir
