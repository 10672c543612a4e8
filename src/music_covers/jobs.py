from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Optional

from .download import fetch_image
from .errors import TagWriteError
from .imaging import MIME_EXTENSIONS, extension_for, normalize
from .metrics import format_picked
from .models import CoverOptions, NormalizedImage, Picked, RunSummary
from .resolver import Resolver
from .tagging import embed, strip


Fetcher = Callable[[str], bytes]
ProgressCallback = Callable[[int, int], None]

_TOKEN_MIMES = {ext: mime for mime, ext in MIME_EXTENSIONS.items()}
_TOKEN_MIMES["jpeg"] = "image/jpeg"
_TOKEN_MIMES["tif"] = "image/tiff"

# Every extension artwork_path can write.
ARTWORK_EXTENSIONS = ("jpg", "jpeg", "png") + tuple(sorted(set(_TOKEN_MIMES) - {"jpg", "jpeg", "png"}))


def embed_job(path: Path, picked: Picked, options: CoverOptions, fetch: Fetcher = fetch_image) -> NormalizedImage:
    image = normalize(fetch(picked.big_cover_url), options)
    embed(path, image.data, image.mime, image.width, image.height)
    return image


def existing_artwork(directory: Path, cover_name: str) -> Optional[Path]:
    for ext in ARTWORK_EXTENSIONS:
        candidate = directory / f"{cover_name}.{ext}"
        if candidate.exists():
            return candidate
    return None


def artwork_path(directory: Path, cover_name: str, picked: Picked, image: NormalizedImage) -> Path:
    # Keep the resolver's format token unless the written bytes are another type.
    token = picked.cover_info.format.strip().lower()
    if _TOKEN_MIMES.get(token) == image.mime:
        return directory / f"{cover_name}.{token}"
    return directory / f"{cover_name}.{extension_for(image.mime)}"


def folder_job(
    directory: Path,
    files: list[Path],
    picked: Picked,
    cover_name: str,
    options: CoverOptions,
    fetch: Fetcher = fetch_image,
) -> tuple[Path, list[str]]:
    image = normalize(fetch(picked.big_cover_url), options)
    target = artwork_path(directory, cover_name, picked, image)
    target.write_bytes(image.data)
    print(f"[album] saved album art to {target}")

    warnings: list[str] = []
    for path in files:
        try:
            removed = strip(path)
        except TagWriteError as exc:
            warnings.append(f"failed to remove embedded art from {path}: {exc}")
            print(f"[warn] failed to remove embedded art from {path}: {exc}")
            continue
        print(f"[album] removed {removed} embedded picture(s) from {path.name}")
    return target, warnings


def _collect(
    futures: dict[Future, Path],
    summary: RunSummary,
    label: str,
    progress_callback: ProgressCallback | None,
) -> None:
    total = len(futures)
    summary.dispatched = total
    if progress_callback:
        progress_callback(0, total)

    for idx, future in enumerate(as_completed(futures), start=1):
        target = futures[future]
        try:
            result = future.result()
        except Exception as exc:
            summary.failed += 1
            summary.warnings.append(f"{label} failed: {target}: {exc}")
            print(f"[{label}] failed: {target}: {exc}")
        else:
            summary.completed += 1
            if isinstance(result, tuple):
                summary.warnings.extend(result[1])
            print(f"[{label}] done: {target}")
        if progress_callback:
            progress_callback(idx, total)


def run_per_file(
    groups: dict[Path, list[Path]],
    resolver: Resolver,
    options: CoverOptions,
    jobs: Optional[int] = None,
    fetch: Fetcher = fetch_image,
    progress_callback: ProgressCallback | None = None,
) -> RunSummary:
    summary = RunSummary(mode="file")
    futures: dict[Future, Path] = {}

    with ThreadPoolExecutor(max_workers=jobs) as executor:
        for files in groups.values():
            while files:
                path = files.pop(0)
                outcome = resolver.resolve(path)
                if not outcome.is_found:
                    summary.skipped += 1
                    print(f"[resolve] no cover info found for {path}")
                    continue
                print(format_picked(outcome.picked))
                futures[executor.submit(embed_job, path, outcome.picked, options, fetch)] = path

        _collect(futures, summary, "embed", progress_callback)

    summary.warnings.extend(resolver.warnings)
    return summary


def run_album_mode(
    groups: dict[Path, list[Path]],
    resolver: Resolver,
    options: CoverOptions,
    cover_name: str,
    jobs: Optional[int] = None,
    fetch: Fetcher = fetch_image,
    progress_callback: ProgressCallback | None = None,
) -> RunSummary:
    summary = RunSummary(mode="folder")
    futures: dict[Future, Path] = {}

    with ThreadPoolExecutor(max_workers=jobs) as executor:
        for directory, files in groups.items():
            existing = existing_artwork(directory, cover_name)
            if existing is not None:
                summary.skipped += 1
                print(f"[album] album art already exists in {directory}, skipping ({existing.name})")
                continue

            picked: Optional[Picked] = None
            for path in files:
                outcome = resolver.resolve(path)
                if outcome.is_found:
                    picked = outcome.picked
                    break

            if picked is None:
                summary.skipped += 1
                print(f"[album] no cover info found for folder {directory}")
                continue

            print(format_picked(picked, folder=directory))
            job = executor.submit(folder_job, directory, list(files), picked, cover_name, options, fetch)
            futures[job] = directory

        _collect(futures, summary, "album", progress_callback)

    summary.warnings.extend(resolver.warnings)
    return summary


def run(
    groups: dict[Path, list[Path]],
    resolver: Resolver,
    options: CoverOptions,
    album_cover_name: Optional[str] = None,
    jobs: Optional[int] = None,
    fetch: Fetcher = fetch_image,
    progress_callback: ProgressCallback | None = None,
) -> RunSummary:
    if album_cover_name:
        return run_album_mode(groups, resolver, options, album_cover_name, jobs, fetch, progress_callback)
    return run_per_file(groups, resolver, options, jobs, fetch, progress_callback)
