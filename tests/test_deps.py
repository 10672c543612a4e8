from __future__ import annotations

from pathlib import Path

import pytest

from music_covers.deps import ENV_VAR, covit_binary_name, locate_dependencies
from music_covers.errors import DependencyError


def _executable(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n")
    path.chmod(0o755)
    return path


@pytest.fixture
def isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    monkeypatch.delenv(ENV_VAR, raising=False)
    monkeypatch.setenv("PATH", str(tmp_path / "empty-path"))
    return tmp_path


def test_explicit_path(isolated: Path) -> None:
    covit = _executable(isolated / "tools" / "covit")

    assert locate_dependencies(covit).covit == covit.resolve()


def test_explicit_path_must_exist(isolated: Path) -> None:
    with pytest.raises(DependencyError):
        locate_dependencies(isolated / "nope")


def test_environment_variable(isolated: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    covit = _executable(isolated / "env" / "covit")
    monkeypatch.setenv(ENV_VAR, str(covit))

    assert locate_dependencies(search_dir=isolated).covit == covit.resolve()


def test_deps_bin_directory(isolated: Path) -> None:
    covit = _executable(isolated / "deps_bin" / covit_binary_name())

    assert locate_dependencies(search_dir=isolated).covit == covit.resolve()


def test_path_lookup(isolated: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    covit = _executable(isolated / "bin" / covit_binary_name())
    monkeypatch.setenv("PATH", str(covit.parent))

    assert locate_dependencies(search_dir=isolated / "elsewhere").covit == covit.resolve()


def test_missing_everywhere_is_fatal(isolated: Path) -> None:
    with pytest.raises(DependencyError):
        locate_dependencies(search_dir=isolated)
