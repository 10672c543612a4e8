from __future__ import annotations

from pathlib import Path
from typing import Optional

from .models import Picked, RunSummary


def human_size(num_bytes: int) -> str:
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    return f"{bytes_to_mb(num_bytes):.2f} MB"


def bytes_to_mb(num_bytes: int) -> float:
    return num_bytes / (1024 * 1024)


def format_picked(picked: Picked, folder: Optional[Path] = None) -> str:
    release = picked.release_info
    cover = picked.cover_info
    lines = []
    if folder is not None:
        lines.append(f"Folder: {folder}")
    lines += [
        f"Artist: {release.artist}",
        f"Title: {release.title}",
        f"Date: {release.date}",
    ]
    if release.tracks is not None:
        lines.append(f"Tracks: {release.tracks}")
    lines += [
        f"Cover Type: {cover.format}",
        f"Image Size: {cover.size} bytes ({human_size(cover.size)})",
        f"Dimensions: {cover.width}x{cover.height}",
        f"Big Cover URL: {picked.big_cover_url}",
    ]
    return "\n".join(lines) + "\n"


def summary_line(summary: RunSummary) -> str:
    unit = "folder(s)" if summary.mode == "folder" else "job(s)"
    return f"Summary: {summary.completed} {unit} finished."
