"""Incremental rebuild guard keyed on input files and artifact mtime."""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import cbor2

logger = logging.getLogger(__name__)

RECORD_VERSION = 1


def mtime(path: str | Path) -> float:
    """Modification time of *path*, ``0`` when it does not exist."""
    try:
        return os.stat(path).st_mtime
    except FileNotFoundError:
        return 0.0


@dataclass(frozen=True, slots=True)
class DependRecord:
    files: tuple[str, ...]
    values: tuple[str, ...] = ()
    last_mtime: float = 0.0

    def to_cbor(self) -> bytes:
        payload = {
            "version": RECORD_VERSION,
            "files": list(self.files),
            "values": list(self.values),
            "last_mtime": self.last_mtime,
        }
        return cbor2.dumps(payload, canonical=True)

    @classmethod
    def from_cbor(cls, raw: bytes) -> DependRecord | None:
        try:
            payload = cbor2.loads(raw)
        except (cbor2.CBORDecodeError, ValueError, EOFError):
            return None
        if not isinstance(payload, dict) or payload.get("version") != RECORD_VERSION:
            return None
        files = payload.get("files")
        values = payload.get("values", [])
        last_mtime = payload.get("last_mtime", 0.0)
        if not isinstance(files, list) or not isinstance(values, list):
            return None
        if isinstance(last_mtime, bool) or not isinstance(last_mtime, (int, float)):
            return None
        return cls(
            files=tuple(str(f) for f in files),
            values=tuple(str(v) for v in values),
            last_mtime=float(last_mtime),
        )


class ChangeDetector:
    """Runs a build step only when its recorded inputs changed.

    The step is skipped when the dependency record lists the same files and
    values, the artifact exists, and no input is newer than the artifact.
    The record is written only after the step returns normally.
    """

    def load(self, depend_file: Path) -> DependRecord | None:
        try:
            raw = Path(depend_file).read_bytes()
        except FileNotFoundError:
            return None
        return DependRecord.from_cbor(raw)

    def is_changed(
        self,
        record: DependRecord | None,
        *,
        files: Sequence[str | Path],
        last_mtime: float,
        values: Sequence[str] = (),
    ) -> bool:
        if record is None:
            return True
        if record.files != tuple(str(f) for f in files):
            return True
        if record.values != tuple(values):
            return True
        if not last_mtime:
            return True
        for f in files:
            file_mtime = mtime(f)
            if not file_mtime or file_mtime > last_mtime:
                return True
        return False

    def on_changed(
        self,
        func: Callable[[], Any],
        *,
        depend_file: Path,
        files: Sequence[str | Path],
        last_mtime: float,
        values: Sequence[str] = (),
    ) -> bool:
        """Call *func* if the inputs changed; return whether it ran."""
        record = self.load(depend_file)
        if not self.is_changed(record, files=files, last_mtime=last_mtime, values=values):
            logger.debug("%s is up to date", depend_file)
            return False

        func()

        updated = DependRecord(
            files=tuple(str(f) for f in files),
            values=tuple(values),
            last_mtime=last_mtime,
        )
        depend_file = Path(depend_file)
        depend_file.parent.mkdir(parents=True, exist_ok=True)
        depend_file.write_bytes(updated.to_cbor())
        return True
