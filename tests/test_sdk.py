from pathlib import Path

import pytest

from kmodbuild.errors import ConfigurationError
from kmodbuild.models import PackageDescriptor
from kmodbuild.sdk import is_configured_kernel, resolve_linux_headers_sdk
from tests.fakes import make_headers_tree


def _package(*includedirs: Path, sysincludedirs: tuple[Path, ...] = ()) -> PackageDescriptor:
    return PackageDescriptor(
        name="linux-headers",
        version="5.15.0",
        includedirs=list(includedirs),
        sysincludedirs=list(sysincludedirs),
    )


def test_resolves_sdk_from_linux_headers_include_dir(tmp_path: Path) -> None:
    include_dir = make_headers_tree(tmp_path)
    other = tmp_path / "other" / "include"

    sdk = resolve_linux_headers_sdk(_package(other, include_dir))

    assert sdk.version == "5.15.0"
    assert sdk.include_dir == include_dir
    assert sdk.sdk_dir == include_dir.parent
    assert sdk.modpost == include_dir.parent / "scripts" / "mod" / "modpost"
    assert sdk.linker_script == include_dir.parent / "scripts" / "module.lds"


def test_accepts_auto_conf_marker(tmp_path: Path) -> None:
    include_dir = make_headers_tree(tmp_path, marker="config/auto.conf")

    assert resolve_linux_headers_sdk(_package(include_dir)).include_dir == include_dir


def test_falls_back_to_sysincludedirs(tmp_path: Path) -> None:
    include_dir = make_headers_tree(tmp_path)

    sdk = resolve_linux_headers_sdk(_package(sysincludedirs=(include_dir,)))

    assert sdk.sdk_dir == include_dir.parent


def test_missing_package_is_configuration_error() -> None:
    with pytest.raises(ConfigurationError) as excinfo:
        resolve_linux_headers_sdk(None)

    assert excinfo.value.code == "E_CONFIGURATION"
    assert excinfo.value.hint is not None
    assert "linux-headers" in excinfo.value.hint


def test_no_linux_headers_directory_is_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="linux-headers not found"):
        resolve_linux_headers_sdk(_package(tmp_path / "usr" / "include"))


@pytest.mark.parametrize(
    "version",
    ["5.15.0", "6.1.0-13-amd64", "4.19.0"],
)
def test_unconfigured_kernel_is_rejected_for_every_candidate(tmp_path: Path, version: str) -> None:
    include_dir = make_headers_tree(tmp_path, version=version, marker=None)

    assert not is_configured_kernel(include_dir)
    with pytest.raises(ConfigurationError) as excinfo:
        resolve_linux_headers_sdk(_package(include_dir))

    assert "autoconf.h" in str(excinfo.value)
    assert excinfo.value.context["include_dir"] == str(include_dir)


def test_marker_must_be_a_file(tmp_path: Path) -> None:
    include_dir = make_headers_tree(tmp_path, marker=None)
    (include_dir / "generated" / "autoconf.h").mkdir(parents=True)

    with pytest.raises(ConfigurationError):
        resolve_linux_headers_sdk(_package(include_dir))
