from __future__ import annotations

import struct
import wave
from io import BytesIO
from pathlib import Path
from typing import Callable

import pytest
from PIL import Image
from PIL.PngImagePlugin import PngInfo

from music_covers.models import ResolveOutcome


def _flac_stub() -> bytes:
    # STREAMINFO only: 44.1 kHz, 2 channels, 16 bit, 44100 samples, no frames.
    streaminfo = (
        struct.pack(">HH", 4096, 4096)
        + b"\x00" * 6
        + bytes([0x0A, 0xC4, 0x42, 0xF0, 0x00, 0x00, 0xAC, 0x44])
        + b"\x00" * 16
    )
    return b"fLaC" + bytes([0x80, 0x00, 0x00, len(streaminfo)]) + streaminfo


@pytest.fixture
def make_wav() -> Callable[[Path], Path]:
    def _make(path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        with wave.open(str(path), "wb") as handle:
            handle.setnchannels(1)
            handle.setsampwidth(2)
            handle.setframerate(8000)
            handle.writeframes(b"\x00\x00" * 800)
        return path

    return _make


@pytest.fixture
def make_flac() -> Callable[[Path], Path]:
    def _make(path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(_flac_stub())
        return path

    return _make


def _encode(image: Image.Image, fmt: str, **params) -> bytes:
    out = BytesIO()
    image.save(out, format=fmt, **params)
    return out.getvalue()


@pytest.fixture
def png_bytes() -> Callable[..., bytes]:
    def _make(size: tuple[int, int] = (16, 16), mode: str = "RGBA", color=(200, 30, 30, 255), comment: str = "") -> bytes:
        image = Image.new(mode, size, color)
        params = {}
        if comment:
            info = PngInfo()
            info.add_text("Comment", comment)
            params["pnginfo"] = info
        return _encode(image, "PNG", **params)

    return _make


@pytest.fixture
def jpeg_bytes() -> Callable[..., bytes]:
    def _make(size: tuple[int, int] = (64, 64), quality: int = 95) -> bytes:
        image = Image.new("RGB", size)
        image.putdata([((x * 7) % 256, (y * 5) % 256, (x * y) % 256) for y in range(size[1]) for x in range(size[0])])
        return _encode(image, "JPEG", quality=quality)

    return _make


@pytest.fixture
def gif_bytes() -> bytes:
    return _encode(Image.new("P", (4, 4), 1), "GIF")


class FakeRunner:
    """Replays canned (stdout, stderr) pairs and records each argv."""

    def __init__(self, *outputs: tuple[str, str]) -> None:
        self.outputs = list(outputs)
        self.calls: list[list[str]] = []

    def __call__(self, args: list[str]) -> tuple[str, str]:
        self.calls.append(args)
        return self.outputs.pop(0)


@pytest.fixture
def fake_runner() -> type[FakeRunner]:
    return FakeRunner


class FakeResolver:
    """Returns a fixed outcome per file name, NOT_FOUND otherwise."""

    def __init__(self, outcomes: dict[str, ResolveOutcome]) -> None:
        self.outcomes = outcomes
        self.calls: list[Path] = []
        self.warnings: list[str] = []

    def resolve(self, input_path: Path) -> ResolveOutcome:
        self.calls.append(input_path)
        return self.outcomes.get(input_path.name, ResolveOutcome.not_found())


@pytest.fixture
def fake_resolver() -> type[FakeResolver]:
    return FakeResolver
