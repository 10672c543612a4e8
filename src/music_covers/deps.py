from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Optional

from .errors import DependencyError
from .models import DependencyPaths


ENV_VAR = "MUSIC_COVERS_COVIT"
DEPS_DIR = "deps_bin"


def covit_binary_name() -> str:
    return "covit.exe" if os.name == "nt" else "covit"


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def locate_dependencies(explicit: Optional[Path] = None, search_dir: Optional[Path] = None) -> DependencyPaths:
    """Find an already installed covit executable.

    Lookup order: explicit path, the MUSIC_COVERS_COVIT environment variable,
    deps_bin/ under search_dir (default: current directory), then PATH.
    """
    if explicit is not None:
        explicit = explicit.expanduser()
        if not _is_executable(explicit):
            raise DependencyError(f"covit is not an executable file: {explicit}")
        return DependencyPaths(covit=explicit.resolve())

    name = covit_binary_name()
    candidates: list[Path] = []
    env_value = os.environ.get(ENV_VAR)
    if env_value:
        candidates.append(Path(env_value).expanduser())
    candidates.append((search_dir or Path.cwd()) / DEPS_DIR / name)
    on_path = shutil.which(name)
    if on_path:
        candidates.append(Path(on_path))

    for candidate in candidates:
        if _is_executable(candidate):
            return DependencyPaths(covit=candidate.resolve())

    raise DependencyError(
        f"could not find {name}; pass --covit, set {ENV_VAR}, place it in ./{DEPS_DIR}/ or add it to PATH"
    )
