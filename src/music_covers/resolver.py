from __future__ import annotations

import json
import re
import subprocess
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Callable, Optional

from .models import CoverInfo, Picked, ReleaseInfo, ResolveOutcome

try:
    APP_VERSION = version("music-covers")
except PackageNotFoundError:  # pragma: no cover - running from a source checkout
    APP_VERSION = "0.1.0"

DEFAULT_ADDRESS = "https://covers.musichoarders.xyz"
REMOTE_AGENT = f"music-covers - {APP_VERSION}"
QUERY_SOURCES = "booth,amazonmusic,applemusic,musicbrainz,discogs,fanarttv,soundcloud,itunes,tidal"
QUERY_COUNTRY = "gb"

PICKED_PREFIX = "Picked: "
FALLBACK_DELIMITERS = (" - ", " – ", " — ", " _ ", ":", " | ")

_LISTENING = re.compile(r"^Listening: \d+\s*$")

# Runs an argv list and returns decoded (stdout, stderr).
CommandRunner = Callable[[list[str]], tuple[str, str]]


def run_command(args: list[str]) -> tuple[str, str]:
    completed = subprocess.run(args, capture_output=True, check=False)
    stdout = completed.stdout.decode("utf-8", errors="replace")
    stderr = completed.stderr.decode("utf-8", errors="replace")
    return stdout, stderr


def is_declined(stdout: str, stderr: str) -> bool:
    """True when the resolver only reported its listening port.

    That output shape means the selection tab was closed without a pick.
    """
    if stderr.strip():
        return False
    return all(_LISTENING.match(line) for line in stdout.splitlines())


def _section(value: dict, key: str) -> dict:
    section = value.get(key)
    return section if isinstance(section, dict) else {}


def _text(section: dict, key: str, default: str) -> str:
    value = section.get(key)
    return value if isinstance(value, str) else default


def _count(section: dict, key: str) -> Optional[int]:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return None
    return value


def _picked_from_json(value: dict) -> Picked:
    release = _section(value, "releaseInfo")
    cover = _section(value, "coverInfo")
    return Picked(
        big_cover_url=_text(value, "bigCoverUrl", ""),
        release_info=ReleaseInfo(
            title=_text(release, "title", "Unknown Title"),
            artist=_text(release, "artist", "Unknown Artist"),
            date=_text(release, "date", "Unknown Date"),
            tracks=_count(release, "tracks"),
        ),
        cover_info=CoverInfo(
            format=_text(cover, "format", "Unknown Format"),
            width=_count(cover, "width") or 0,
            height=_count(cover, "height") or 0,
            size=_count(cover, "size") or 0,
        ),
    )


def parse_picked(stdout: str) -> Optional[Picked]:
    for line in stdout.splitlines():
        if not line.startswith(PICKED_PREFIX):
            continue
        try:
            value = json.loads(line[len(PICKED_PREFIX):])
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return _picked_from_json(value)
    return None


def split_artist_title(stem: str) -> tuple[Optional[str], Optional[str]]:
    for delimiter in FALLBACK_DELIMITERS:
        idx = stem.find(delimiter)
        if idx >= 0:
            return stem[:idx].strip(), stem[idx + len(delimiter):].strip()
    return None, stem.strip()


def build_input_command(
    resolver_path: Path | str,
    address: str,
    input_path: Path,
    query_sources: Optional[str] = QUERY_SOURCES,
    query_country: Optional[str] = QUERY_COUNTRY,
) -> list[str]:
    args = [
        str(resolver_path),
        "--address",
        address,
        "--input",
        str(input_path),
        "--remote-agent",
        REMOTE_AGENT,
    ]
    return args + _query_options(query_sources, query_country)


def build_query_command(
    resolver_path: Path | str,
    address: str,
    title: str,
    artist: Optional[str] = None,
    query_sources: Optional[str] = QUERY_SOURCES,
    query_country: Optional[str] = QUERY_COUNTRY,
) -> list[str]:
    args = [str(resolver_path), "--address", address, "--query-album", title]
    if artist:
        args += ["--query-artist", artist]
    args += ["--remote-agent", REMOTE_AGENT]
    return args + _query_options(query_sources, query_country)


def _query_options(query_sources: Optional[str], query_country: Optional[str]) -> list[str]:
    args: list[str] = []
    if query_sources:
        args += ["--query-sources", query_sources]
    if query_country:
        args += ["--query-country", query_country]
    return args


class Resolver:
    def __init__(
        self,
        resolver_path: Path | str,
        address: str = DEFAULT_ADDRESS,
        query_sources: Optional[str] = QUERY_SOURCES,
        query_country: Optional[str] = QUERY_COUNTRY,
        runner: CommandRunner = run_command,
        verbose: bool = False,
    ) -> None:
        self.resolver_path = resolver_path
        self.address = address
        self.query_sources = query_sources
        self.query_country = query_country
        self.runner = runner
        self.verbose = verbose
        self.warnings: list[str] = []

    def _run(self, args: list[str]) -> Optional[tuple[str, str]]:
        if self.verbose:
            print(f"[resolve] {' '.join(args)}")
        try:
            return self.runner(args)
        except OSError as exc:
            self.warnings.append(f"resolver failed to start: {args[0]}: {exc}")
            print(f"[warn] resolver failed to start: {exc}")
            return None

    def resolve(self, input_path: Path) -> ResolveOutcome:
        output = self._run(
            build_input_command(
                self.resolver_path,
                self.address,
                input_path,
                self.query_sources,
                self.query_country,
            )
        )
        if output is None:
            return ResolveOutcome.not_found()

        stdout, stderr = output
        if is_declined(stdout, stderr):
            print(f"[resolve] selection closed without a pick: {input_path.name}")
            return ResolveOutcome.declined()

        picked = parse_picked(stdout)
        if picked is not None and picked.big_cover_url:
            return ResolveOutcome.found(picked)

        artist, title = split_artist_title(input_path.stem)
        if not title:
            return ResolveOutcome.not_found()

        if self.verbose:
            print(f"[resolve] retrying by name: artist={artist!r} title={title!r}")
        output = self._run(
            build_query_command(
                self.resolver_path,
                self.address,
                title,
                artist,
                self.query_sources,
                self.query_country,
            )
        )
        if output is None:
            return ResolveOutcome.not_found()

        picked = parse_picked(output[0])
        if picked is not None and picked.big_cover_url:
            return ResolveOutcome.found(picked)
        return ResolveOutcome.not_found()


def resolve(resolver_path: Path | str, address: str, input_path: Path, **kwargs) -> ResolveOutcome:
    return Resolver(resolver_path, address, **kwargs).resolve(input_path)
