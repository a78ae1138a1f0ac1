import os
from pathlib import Path

import cbor2
import pytest

from kmodbuild.depend import ChangeDetector, DependRecord, mtime


def _touch(path: Path, when: float) -> None:
    path.write_text("x", encoding="utf-8")
    os.utime(path, (when, when))


@pytest.fixture
def inputs(tmp_path: Path) -> tuple[Path, Path, Path]:
    first = tmp_path / "a.o"
    second = tmp_path / "b.o"
    artifact = tmp_path / "out.ko"
    _touch(first, 1_000)
    _touch(second, 1_000)
    return first, second, artifact


def test_mtime_of_missing_file_is_zero(tmp_path: Path) -> None:
    assert mtime(tmp_path / "missing") == 0


def test_runs_once_while_inputs_are_unchanged(tmp_path: Path, inputs: tuple[Path, ...]) -> None:
    first, second, artifact = inputs
    detector = ChangeDetector()
    depend_file = tmp_path / "deps" / "out.ko.d"
    runs: list[int] = []

    def step() -> None:
        runs.append(1)
        _touch(artifact, 2_000)

    for _ in range(3):
        detector.on_changed(
            step, depend_file=depend_file, files=[first, second], last_mtime=mtime(artifact)
        )

    assert len(runs) == 1
    record = detector.load(depend_file)
    assert record is not None
    assert record.files == (str(first), str(second))


def test_newer_input_triggers_rerun(tmp_path: Path, inputs: tuple[Path, ...]) -> None:
    first, second, artifact = inputs
    _touch(artifact, 2_000)
    detector = ChangeDetector()
    depend_file = tmp_path / "out.ko.d"
    detector.on_changed(lambda: None, depend_file=depend_file, files=[first], last_mtime=2_000)

    _touch(first, 3_000)

    assert detector.on_changed(
        lambda: None, depend_file=depend_file, files=[first], last_mtime=2_000
    )


@pytest.mark.parametrize(
    ("files", "values", "last_mtime"),
    [
        ("more", (), 2_000.0),
        ("same", ("-O2",), 2_000.0),
        ("same", (), 0.0),
    ],
)
def test_changed_fingerprint_triggers_rerun(
    tmp_path: Path,
    inputs: tuple[Path, ...],
    files: str,
    values: tuple[str, ...],
    last_mtime: float,
) -> None:
    first, second, _ = inputs
    detector = ChangeDetector()
    depend_file = tmp_path / "out.ko.d"
    detector.on_changed(lambda: None, depend_file=depend_file, files=[first], last_mtime=2_000)

    current = [first, second] if files == "more" else [first]
    assert detector.on_changed(
        lambda: None,
        depend_file=depend_file,
        files=current,
        last_mtime=last_mtime,
        values=values,
    )


def test_missing_input_triggers_rerun(tmp_path: Path, inputs: tuple[Path, ...]) -> None:
    first, _, _ = inputs
    detector = ChangeDetector()
    depend_file = tmp_path / "out.ko.d"
    detector.on_changed(lambda: None, depend_file=depend_file, files=[first], last_mtime=2_000)
    first.unlink()

    assert detector.is_changed(detector.load(depend_file), files=[first], last_mtime=2_000)


def test_failed_step_does_not_record(tmp_path: Path, inputs: tuple[Path, ...]) -> None:
    first, _, _ = inputs
    detector = ChangeDetector()
    depend_file = tmp_path / "out.ko.d"

    def boom() -> None:
        raise RuntimeError("link failed")

    with pytest.raises(RuntimeError):
        detector.on_changed(boom, depend_file=depend_file, files=[first], last_mtime=2_000)

    assert not depend_file.exists()


def test_corrupt_record_counts_as_changed(tmp_path: Path, inputs: tuple[Path, ...]) -> None:
    first, _, _ = inputs
    depend_file = tmp_path / "out.ko.d"
    depend_file.write_bytes(b"\xff\x00garbage")
    detector = ChangeDetector()

    assert detector.load(depend_file) is None
    assert detector.on_changed(
        lambda: None, depend_file=depend_file, files=[first], last_mtime=2_000
    )


@pytest.mark.parametrize(
    "payload",
    [
        {"version": 1, "files": [], "values": [], "last_mtime": "bogus"},
        {"version": 1, "files": [], "values": [], "last_mtime": None},
        {"version": 1, "files": [], "values": [], "last_mtime": True},
        {"version": 1, "files": "a.o", "values": []},
        {"version": 2, "files": [], "values": []},
        ["not", "a", "map"],
    ],
)
def test_malformed_record_counts_as_changed(
    tmp_path: Path, inputs: tuple[Path, ...], payload: object
) -> None:
    first, _, _ = inputs
    depend_file = tmp_path / "out.ko.d"
    depend_file.write_bytes(cbor2.dumps(payload))
    detector = ChangeDetector()
    runs: list[int] = []

    assert detector.load(depend_file) is None
    assert detector.on_changed(
        lambda: runs.append(1), depend_file=depend_file, files=[first], last_mtime=2_000
    )
    assert runs == [1]
    assert detector.load(depend_file) is not None


def test_record_encoding_is_canonical() -> None:
    record = DependRecord(files=("a.o", "b.o"), values=("x",), last_mtime=12.5)

    encoded = record.to_cbor()

    assert encoded == DependRecord(files=("a.o", "b.o"), values=("x",), last_mtime=12.5).to_cbor()
    assert DependRecord.from_cbor(encoded) == record
