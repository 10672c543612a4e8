from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .deps import locate_dependencies
from .errors import DependencyError
from .jobs import run
from .metrics import summary_line
from .models import CoverOptions
from .resolver import DEFAULT_ADDRESS, Resolver
from .scanner import discover


class ProgressPrinter:
    """Prints job progress as `[stage] NN% (done/total)`.

    On a terminal the line is redrawn in place on every percent change. When
    output is piped, a new line is printed at most every `step` percent.
    """

    def __init__(self, stage: str, step: int = 10) -> None:
        self.stage = stage
        self.step = step
        self.interactive = sys.stdout.isatty()
        self.shown = -1

    def __call__(self, done: int, total: int) -> None:
        percent = 100 if total <= 0 else max(0, min(100, done * 100 // total))
        finished = done >= total
        line = f"[{self.stage}] {percent:3d}% ({done}/{total})"

        if self.interactive:
            if percent != self.shown or finished:
                print(f"\r{line}", end="\n" if finished else "", flush=True)
                self.shown = percent
        elif self.shown < 0 or finished or percent >= self.shown + self.step:
            print(line)
            self.shown = percent


def _jpeg_quality(value: str) -> int:
    try:
        quality = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value}")
    if not 0 <= quality <= 100:
        raise argparse.ArgumentTypeError("JPEG quality must be between 0 and 100")
    return quality


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a number: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="music-covers",
        description="Pick cover art for music files and embed it into their tags.",
    )
    parser.add_argument(
        "-i",
        "--input",
        type=Path,
        default=Path("."),
        help="Directory to process recursively, or a single file (defaults to current directory)",
    )
    parser.add_argument(
        "-c",
        "--cov-url",
        default=DEFAULT_ADDRESS,
        metavar="COV_ADDRESS_URL",
        help="Address of the COV website to open on launch",
    )
    parser.add_argument(
        "-a",
        "--album-mode",
        default=None,
        metavar="COVER_NAME",
        help=(
            "Write the picked image into each folder as COVER_NAME.<ext> and remove embedded "
            "images from the music files in that folder"
        ),
    )
    parser.add_argument(
        "--png-to-jpeg",
        action="store_true",
        help="If a PNG is picked, convert it to JPEG to save space",
    )
    parser.add_argument(
        "-j",
        "--jpeg-optimise",
        type=_jpeg_quality,
        default=None,
        metavar="JPEG_QUALITY_NUMBER",
        help="Re-encode JPEG images with the given quality (0-100, recommended: 80)",
    )
    parser.add_argument(
        "-p",
        "--png-optimise",
        action="store_true",
        help="Losslessly optimise PNG images to reduce file size",
    )
    parser.add_argument(
        "--covit",
        type=Path,
        default=None,
        help="Path to the covit executable (defaults to $MUSIC_COVERS_COVIT, ./deps_bin or PATH)",
    )
    parser.add_argument(
        "--jobs",
        type=_positive_int,
        default=None,
        help="Maximum number of download/embed jobs running at once",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print per-file scan and resolver details",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        deps = locate_dependencies(args.covit)
    except DependencyError as exc:
        raise SystemExit(f"Failed to locate dependencies: {exc}")

    input_path: Path = args.input.expanduser()
    print(f"[start] scanning: {input_path}")
    scan_result = discover(input_path, verbose=args.verbose)
    for warning in scan_result.warnings:
        print(f"[warn] {warning}")

    if not scan_result.groups:
        print("[done] no supported audio/video files were found")
        return
    print(f"[scan] files found: {scan_result.total_files} in {len(scan_result.groups)} folder(s)")

    options = CoverOptions(
        png_to_jpeg=args.png_to_jpeg,
        jpeg_quality=args.jpeg_optimise,
        png_optimise=args.png_optimise,
    )
    resolver = Resolver(deps.covit, address=args.cov_url, verbose=args.verbose)

    stage = "album" if args.album_mode else "embed"
    summary = run(
        scan_result.groups,
        resolver,
        options,
        album_cover_name=args.album_mode,
        jobs=args.jobs,
        progress_callback=ProgressPrinter(stage),
    )

    if summary.failed:
        print(f"[warn] failed: {summary.failed}")
    if summary.skipped:
        print(f"[done] skipped (no cover picked or art present): {summary.skipped}")
    print(summary_line(summary))


if __name__ == "__main__":
    main()
