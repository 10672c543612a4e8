from __future__ import annotations

import struct
from io import BytesIO
from typing import Optional

from PIL import Image, UnidentifiedImageError
from PIL.PngImagePlugin import PngInfo

from .errors import ImageProcessingError
from .models import CoverOptions, NormalizedImage


PNG_MIME = "image/png"
JPEG_MIME = "image/jpeg"

_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", PNG_MIME),
    (b"\xff\xd8\xff", JPEG_MIME),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
    (b"II*\x00", "image/tiff"),
    (b"MM\x00*", "image/tiff"),
)

MIME_EXTENSIONS = {
    PNG_MIME: "png",
    JPEG_MIME: "jpg",
    "image/gif": "gif",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
    "image/webp": "webp",
}

_DECODE_ERRORS = (OSError, SyntaxError, ValueError, Image.DecompressionBombError)


def detect_mime(data: bytes) -> Optional[str]:
    for signature, mime in _SIGNATURES:
        if data.startswith(signature):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def _decode(data: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except _DECODE_ERRORS as exc:
        raise ImageProcessingError(f"could not decode image: {exc}") from exc
    return image


def _flatten(image: Image.Image) -> Image.Image:
    # JPEG has no alpha channel, transparent areas become white.
    has_alpha = image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info
    if has_alpha:
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if image.mode not in ("RGB", "L", "CMYK"):
        return image.convert("RGB")
    return image


def encode_jpeg(image: Image.Image, quality: Optional[int] = None) -> bytes:
    params: dict[str, object] = {"format": "JPEG"}
    if quality is not None:
        params["quality"] = quality
    icc_profile = image.info.get("icc_profile")
    if icc_profile:
        params["icc_profile"] = icc_profile

    out = BytesIO()
    try:
        _flatten(image).save(out, **params)
    except _DECODE_ERRORS as exc:
        raise ImageProcessingError(f"could not encode JPEG: {exc}") from exc
    return out.getvalue()


def convert_png_to_jpeg(data: bytes, quality: Optional[int] = None) -> bytes:
    return encode_jpeg(_decode(data), quality)


def reencode_jpeg(data: bytes, quality: int) -> bytes:
    return encode_jpeg(_decode(data), quality)


def _png_bit_depth(data: bytes) -> int:
    # IHDR is always the first chunk; bit depth sits right after width and height.
    if len(data) < 25 or data[12:16] != b"IHDR":
        return 0
    return data[24]


def _ancillary_chunks(info: dict) -> PngInfo:
    chunks = PngInfo()
    gamma = info.get("gamma")
    if gamma:
        chunks.add(b"gAMA", struct.pack(">I", round(gamma * 100000)))
    if "srgb" in info:
        chunks.add(b"sRGB", bytes([info["srgb"]]))
    chromaticity = info.get("chromaticity")
    if chromaticity:
        chunks.add(b"cHRM", struct.pack(">8I", *(round(value * 100000) for value in chromaticity)))
    return chunks


def optimise_png(data: bytes) -> bytes:
    """Losslessly recompress PNG data.

    Text chunks are dropped. Colour handling chunks (ICC profile, gamma, sRGB,
    chromaticity) and the physical pixel size are kept, and an alpha channel
    that is fully opaque is removed. Pillow reduces 16 bit samples to 8 bits,
    so deeper images are returned as they are. The input is also returned
    untouched when the recompressed output is not smaller, so repeated passes
    are stable.
    """
    if _png_bit_depth(data) > 8:
        return data

    image = _decode(data)
    info = dict(image.info)
    if image.mode in ("RGBA", "LA") and image.getchannel("A").getextrema() == (255, 255):
        image = image.convert("RGB" if image.mode == "RGBA" else "L")

    params: dict[str, object] = {"format": "PNG", "optimize": True, "pnginfo": _ancillary_chunks(info)}
    icc_profile = info.get("icc_profile")
    if icc_profile:
        params["icc_profile"] = icc_profile
    if "dpi" in info:
        params["dpi"] = info["dpi"]

    out = BytesIO()
    try:
        image.save(out, **params)
    except _DECODE_ERRORS as exc:
        raise ImageProcessingError(f"could not encode PNG: {exc}") from exc

    optimised = out.getvalue()
    return optimised if len(optimised) < len(data) else data


def describe(data: bytes) -> NormalizedImage:
    mime = detect_mime(data)
    if mime is None:
        raise ImageProcessingError("unrecognised image data")
    try:
        with Image.open(BytesIO(data)) as image:
            width, height = image.size
    except UnidentifiedImageError:
        return NormalizedImage(data=data, mime=mime)
    return NormalizedImage(data=data, mime=mime, width=width, height=height)


def normalize(data: bytes, options: CoverOptions) -> NormalizedImage:
    mime = detect_mime(data)
    if mime is None:
        raise ImageProcessingError("unrecognised image data")

    if mime == PNG_MIME:
        if options.png_to_jpeg:
            data = convert_png_to_jpeg(data, options.jpeg_quality)
        elif options.png_optimise:
            data = optimise_png(data)
    elif mime == JPEG_MIME and options.jpeg_quality is not None:
        data = reencode_jpeg(data, options.jpeg_quality)

    return describe(data)


def extension_for(mime: str) -> str:
    return MIME_EXTENSIONS.get(mime, "img")
