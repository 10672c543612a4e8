from __future__ import annotations

import os
import re
from collections import defaultdict
from pathlib import Path

from .formats import is_media_file, media_file
from .models import ScanResult


_DIGITS = re.compile(r"[0-9]+")


def first_number(name: str) -> tuple[int, int] | None:
    """Return (value, digit count) of the first run of ASCII digits in name."""
    match = _DIGITS.search(name)
    if match is None:
        return None
    digits = match.group()
    return int(digits), len(digits)


def track_sort_key(path: Path) -> tuple[int, int, int, str, str]:
    # Numbered names first, by value; on equal values the longer (zero padded)
    # run wins. Name and full path keep the order total.
    stem = path.stem
    number = first_number(stem)
    if number is None:
        return (1, 0, 0, stem, str(path))
    value, width = number
    return (0, value, -width, stem, str(path))


def sort_tracks(paths: list[Path]) -> list[Path]:
    return sorted(paths, key=track_sort_key)


def discover(input_path: str | Path, verbose: bool = False) -> ScanResult:
    root = Path(input_path).expanduser()
    warnings: list[str] = []
    files_by_dir: dict[Path, list[Path]] = defaultdict(list)

    def _on_walk_error(err: OSError) -> None:
        target = getattr(err, "filename", None) or str(root)
        warnings.append(f"walk error: {target}: {err.strerror or str(err)}")
        if verbose:
            print(f"[scan-warning] walk error: {target}: {err.strerror or str(err)}")

    if root.is_dir():
        for dirpath, _, filenames in os.walk(root, onerror=_on_walk_error):
            base = Path(dirpath)
            for name in filenames:
                path = base / name
                try:
                    if path.is_file() and is_media_file(path):
                        song = media_file(path)
                        files_by_dir[base].append(song.path)
                        if verbose:
                            print(f"[scan] {song.media_format.value}: {path.relative_to(root)}")
                except OSError as exc:
                    warnings.append(f"file skipped: {path}: {exc}")
                    if verbose:
                        print(f"[scan-warning] file skipped: {path}: {exc}")
    elif root.is_file():
        if is_media_file(root):
            files_by_dir[root.parent].append(root)
        else:
            warnings.append(f"unsupported file format: {root}")
    else:
        warnings.append(f"path does not exist: {root}")

    groups = {directory: sort_tracks(files_by_dir[directory]) for directory in sorted(files_by_dir)}
    return ScanResult(groups=groups, warnings=warnings)
