from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class MediaFormat(Enum):
    MP3 = "mp3"
    M4A = "m4a"
    FLAC = "flac"
    AAC = "aac"
    OPUS = "opus"
    OGG = "ogg"
    WMA = "wma"
    WAV = "wav"
    AIFF = "aiff"
    ALAC = "alac"
    APE = "ape"
    FLV = "flv"
    WEBM = "webm"
    UNKNOWN = "unknown"

    @property
    def is_known(self) -> bool:
        return self is not MediaFormat.UNKNOWN


@dataclass(frozen=True)
class MediaFile:
    path: Path
    media_format: MediaFormat


@dataclass
class ScanResult:
    groups: dict[Path, list[Path]]
    warnings: list[str]

    @property
    def total_files(self) -> int:
        return sum(len(files) for files in self.groups.values())


@dataclass(frozen=True)
class ReleaseInfo:
    title: str = "Unknown Title"
    artist: str = "Unknown Artist"
    date: str = "Unknown Date"
    tracks: Optional[int] = None


@dataclass(frozen=True)
class CoverInfo:
    format: str = "Unknown Format"
    width: int = 0
    height: int = 0
    size: int = 0


@dataclass(frozen=True)
class Picked:
    big_cover_url: str
    release_info: ReleaseInfo = field(default_factory=ReleaseInfo)
    cover_info: CoverInfo = field(default_factory=CoverInfo)


class ResolveStatus(Enum):
    FOUND = "found"
    DECLINED = "declined"
    NOT_FOUND = "not-found"


@dataclass(frozen=True)
class ResolveOutcome:
    status: ResolveStatus
    picked: Optional[Picked] = None

    @classmethod
    def found(cls, picked: Picked) -> ResolveOutcome:
        return cls(ResolveStatus.FOUND, picked)

    @classmethod
    def declined(cls) -> ResolveOutcome:
        return cls(ResolveStatus.DECLINED)

    @classmethod
    def not_found(cls) -> ResolveOutcome:
        return cls(ResolveStatus.NOT_FOUND)

    @property
    def is_found(self) -> bool:
        return self.status is ResolveStatus.FOUND


@dataclass(frozen=True)
class CoverOptions:
    png_to_jpeg: bool = False
    jpeg_quality: Optional[int] = None
    png_optimise: bool = False


@dataclass(frozen=True)
class NormalizedImage:
    data: bytes
    mime: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class EmbeddedPicture:
    picture_type: int
    mime: str
    data: bytes


@dataclass(frozen=True)
class DependencyPaths:
    covit: Path


@dataclass
class RunSummary:
    mode: str
    dispatched: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    warnings: list[str] = field(default_factory=list)
