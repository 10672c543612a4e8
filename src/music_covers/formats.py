from __future__ import annotations

from pathlib import Path

from .models import MediaFile, MediaFormat


MEDIA_EXTENSIONS = {
    ".mp3": MediaFormat.MP3,
    ".m4a": MediaFormat.M4A,
    ".flac": MediaFormat.FLAC,
    ".aac": MediaFormat.AAC,
    ".opus": MediaFormat.OPUS,
    ".ogg": MediaFormat.OGG,
    ".wma": MediaFormat.WMA,
    ".wav": MediaFormat.WAV,
    ".aiff": MediaFormat.AIFF,
    ".alac": MediaFormat.ALAC,
    ".ape": MediaFormat.APE,
    ".flv": MediaFormat.FLV,
    ".webm": MediaFormat.WEBM,
}


def classify(path: Path) -> MediaFormat:
    return MEDIA_EXTENSIONS.get(path.suffix.lower(), MediaFormat.UNKNOWN)


def media_file(path: Path) -> MediaFile:
    return MediaFile(path=path, media_format=classify(path))


def is_media_file(path: Path) -> bool:
    # macOS AppleDouble sidecar files (._*) are metadata blobs, not media.
    if path.name.startswith("._"):
        return False
    return media_file(path).media_format.is_known
