from __future__ import annotations

import base64
import binascii
import stat
import struct
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

import mutagen
from mutagen.apev2 import BINARY, APENoHeaderError, APEv2, APEValue
from mutagen.asf import ASF, ASFByteArrayAttribute
from mutagen.flac import FLAC, Picture
from mutagen.id3 import APIC, ID3, PictureType
from mutagen.mp4 import MP4Cover, MP4Tags
from mutagen.oggopus import OggOpus
from mutagen.oggvorbis import OggVorbis

from .errors import TagWriteError
from .imaging import JPEG_MIME, PNG_MIME, detect_mime, extension_for
from .models import EmbeddedPicture


FRONT_COVER = int(PictureType.COVER_FRONT)
COVER_DESCRIPTION = "Cover"


class TagContainer:
    """An opened media file and the tags it carries.

    The file's own tag (ID3 for MP3, Vorbis comment for FLAC, ilst for MP4 and
    so on) is the primary tag. A standalone APEv2 tag appended to a file that
    has no primary tag is the only secondary tag considered.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        try:
            audio = mutagen.File(self.path)
        except (mutagen.MutagenError, OSError) as exc:
            raise TagWriteError(f"could not read {self.path}: {exc}") from exc
        if audio is None:
            raise TagWriteError(f"unsupported container: {self.path}")
        self.audio = audio

    def primary_tag(self) -> Any:
        return self.audio.tags

    def any_tag(self) -> Any:
        try:
            return APEv2(self.path)
        except APENoHeaderError:
            return None
        except (mutagen.MutagenError, OSError) as exc:
            raise TagWriteError(f"could not read APEv2 tag of {self.path}: {exc}") from exc

    def create_tag(self) -> Any:
        try:
            self.audio.add_tags()
        except mutagen.MutagenError as exc:
            raise TagWriteError(f"cannot add tags to {self.path}: {exc}") from exc
        return self.audio.tags

    def save(self, tag: Any) -> None:
        try:
            with _writable(self.path):
                if tag is self.audio.tags:
                    self.audio.save()
                else:
                    tag.save(self.path)
        except (mutagen.MutagenError, OSError) as exc:
            raise TagWriteError(f"could not save {self.path}: {exc}") from exc


def select_tag(container: TagContainer) -> Any:
    primary = container.primary_tag()
    if primary is not None:
        return primary

    existing = container.any_tag()
    if existing is not None:
        return existing

    return container.create_tag()


@contextmanager
def _writable(path: Path) -> Iterator[None]:
    mode = path.stat().st_mode
    if mode & stat.S_IWUSR:
        yield
        return
    path.chmod(mode | stat.S_IWUSR)
    try:
        yield
    finally:
        path.chmod(mode)


def _flac_picture(data: bytes, mime: str, width: Optional[int], height: Optional[int]) -> Picture:
    picture = Picture()
    picture.type = FRONT_COVER
    picture.mime = mime
    picture.desc = COVER_DESCRIPTION
    picture.data = data
    picture.width = width or 0
    picture.height = height or 0
    picture.depth = 24
    return picture


class ID3Pictures:
    def __init__(self, tag: ID3) -> None:
        self.tag = tag

    def pictures(self) -> list[EmbeddedPicture]:
        return [EmbeddedPicture(int(frame.type), frame.mime, frame.data) for frame in self.tag.getall("APIC")]

    def remove_front_covers(self) -> None:
        keep = [frame for frame in self.tag.getall("APIC") if frame.type != FRONT_COVER]
        self.tag.setall("APIC", keep)

    def add_front_cover(self, data: bytes, mime: str, width: Optional[int] = None, height: Optional[int] = None) -> None:
        self.tag.add(APIC(encoding=3, mime=mime, type=FRONT_COVER, desc=COVER_DESCRIPTION, data=data))

    def clear(self) -> None:
        self.tag.delall("APIC")


class FLACPictures:
    def __init__(self, audio: FLAC) -> None:
        self.audio = audio

    def pictures(self) -> list[EmbeddedPicture]:
        return [EmbeddedPicture(picture.type, picture.mime, picture.data) for picture in self.audio.pictures]

    def remove_front_covers(self) -> None:
        keep = [picture for picture in self.audio.pictures if picture.type != FRONT_COVER]
        self.audio.clear_pictures()
        for picture in keep:
            self.audio.add_picture(picture)

    def add_front_cover(self, data: bytes, mime: str, width: Optional[int] = None, height: Optional[int] = None) -> None:
        self.audio.add_picture(_flac_picture(data, mime, width, height))

    def clear(self) -> None:
        self.audio.clear_pictures()


class VorbisPictures:
    KEY = "metadata_block_picture"
    LEGACY_KEYS = ("coverart", "coverartmime")

    def __init__(self, tag: Any) -> None:
        self.tag = tag

    def _entries(self) -> list[tuple[str, Optional[Picture]]]:
        entries: list[tuple[str, Optional[Picture]]] = []
        for value in self.tag.get(self.KEY, []):
            try:
                entries.append((value, Picture(base64.b64decode(value))))
            except (binascii.Error, mutagen.MutagenError, struct.error):
                entries.append((value, None))
        return entries

    def _legacy(self) -> list[EmbeddedPicture]:
        # Old-style COVERART values are bare base64 images with no picture type.
        mimes = list(self.tag.get("coverartmime", []))
        found: list[EmbeddedPicture] = []
        for idx, value in enumerate(self.tag.get("coverart", [])):
            try:
                data = base64.b64decode(value)
            except binascii.Error:
                continue
            mime = mimes[idx] if idx < len(mimes) else detect_mime(data) or ""
            found.append(EmbeddedPicture(FRONT_COVER, mime, data))
        return found

    def pictures(self) -> list[EmbeddedPicture]:
        return [
            EmbeddedPicture(picture.type, picture.mime, picture.data)
            for _, picture in self._entries()
            if picture is not None
        ] + self._legacy()

    def _store(self, values: list[str]) -> None:
        if values:
            self.tag[self.KEY] = values
        elif self.KEY in self.tag:
            del self.tag[self.KEY]

    def _drop_legacy(self) -> None:
        for key in self.LEGACY_KEYS:
            if key in self.tag:
                del self.tag[key]

    def remove_front_covers(self) -> None:
        self._store([value for value, picture in self._entries() if picture is None or picture.type != FRONT_COVER])
        self._drop_legacy()

    def add_front_cover(self, data: bytes, mime: str, width: Optional[int] = None, height: Optional[int] = None) -> None:
        block = base64.b64encode(_flac_picture(data, mime, width, height).write()).decode("ascii")
        self._store([value for value, _ in self._entries()] + [block])

    def clear(self) -> None:
        self._store([])
        self._drop_legacy()


class MP4Pictures:
    # MP4 cover atoms carry no picture type, every one counts as a front cover.
    KEY = "covr"
    FORMATS = {JPEG_MIME: MP4Cover.FORMAT_JPEG, PNG_MIME: MP4Cover.FORMAT_PNG}

    def __init__(self, tag: MP4Tags) -> None:
        self.tag = tag

    def pictures(self) -> list[EmbeddedPicture]:
        return [
            EmbeddedPicture(
                FRONT_COVER,
                PNG_MIME if cover.imageformat == MP4Cover.FORMAT_PNG else JPEG_MIME,
                bytes(cover),
            )
            for cover in self.tag.get(self.KEY, [])
        ]

    def remove_front_covers(self) -> None:
        self.clear()

    def add_front_cover(self, data: bytes, mime: str, width: Optional[int] = None, height: Optional[int] = None) -> None:
        if mime not in self.FORMATS:
            raise TagWriteError(f"MP4 cover art must be JPEG or PNG, got {mime}")
        self.tag[self.KEY] = list(self.tag.get(self.KEY, [])) + [MP4Cover(data, imageformat=self.FORMATS[mime])]

    def clear(self) -> None:
        if self.KEY in self.tag:
            del self.tag[self.KEY]


class APEPictures:
    PREFIX = "cover art"
    FRONT_KEY = "Cover Art (Front)"

    def __init__(self, tag: APEv2) -> None:
        self.tag = tag

    def _cover_keys(self) -> list[str]:
        return [key for key in self.tag.keys() if key.lower().startswith(self.PREFIX)]

    def pictures(self) -> list[EmbeddedPicture]:
        found: list[EmbeddedPicture] = []
        for key in self._cover_keys():
            value = self.tag[key]
            if value.kind != BINARY:
                continue
            _, _, data = bytes(value.value).partition(b"\x00")
            picture_type = FRONT_COVER if key.lower() == self.FRONT_KEY.lower() else 0
            found.append(EmbeddedPicture(picture_type, detect_mime(data) or "", data))
        return found

    def remove_front_covers(self) -> None:
        if self.FRONT_KEY in self.tag:
            del self.tag[self.FRONT_KEY]

    def add_front_cover(self, data: bytes, mime: str, width: Optional[int] = None, height: Optional[int] = None) -> None:
        filename = f"cover.{extension_for(mime)}".encode("utf-8")
        self.tag[self.FRONT_KEY] = APEValue(filename + b"\x00" + data, BINARY)

    def clear(self) -> None:
        for key in self._cover_keys():
            del self.tag[key]


def _read_utf16z(raw: bytes, pos: int) -> tuple[str, int]:
    end = pos
    while end + 1 < len(raw) and raw[end:end + 2] != b"\x00\x00":
        end += 2
    return raw[pos:end].decode("utf-16-le", errors="replace"), end + 2


def unpack_wm_picture(raw: bytes) -> EmbeddedPicture:
    try:
        picture_type, size = struct.unpack_from("<BI", raw, 0)
    except struct.error as exc:
        raise TagWriteError(f"malformed WM/Picture attribute: {exc}") from exc
    mime, pos = _read_utf16z(raw, 5)
    _, pos = _read_utf16z(raw, pos)
    return EmbeddedPicture(picture_type, mime, raw[pos:pos + size])


def pack_wm_picture(picture_type: int, mime: str, data: bytes, description: str = COVER_DESCRIPTION) -> bytes:
    return (
        struct.pack("<BI", picture_type, len(data))
        + mime.encode("utf-16-le")
        + b"\x00\x00"
        + description.encode("utf-16-le")
        + b"\x00\x00"
        + data
    )


class ASFPictures:
    KEY = "WM/Picture"

    def __init__(self, tag: Any) -> None:
        self.tag = tag

    def _values(self) -> list[Any]:
        return list(self.tag[self.KEY]) if self.KEY in self.tag else []

    def pictures(self) -> list[EmbeddedPicture]:
        return [unpack_wm_picture(bytes(value.value)) for value in self._values()]

    def _store(self, values: list[Any]) -> None:
        if values:
            self.tag[self.KEY] = values
        elif self.KEY in self.tag:
            del self.tag[self.KEY]

    def remove_front_covers(self) -> None:
        self._store(
            [value for value in self._values() if unpack_wm_picture(bytes(value.value)).picture_type != FRONT_COVER]
        )

    def add_front_cover(self, data: bytes, mime: str, width: Optional[int] = None, height: Optional[int] = None) -> None:
        attribute = ASFByteArrayAttribute(pack_wm_picture(FRONT_COVER, mime, data))
        self._store(self._values() + [attribute])

    def clear(self) -> None:
        self._store([])


def picture_slot(audio: Any, tag: Any) -> Any:
    if isinstance(tag, APEv2):
        return APEPictures(tag)
    if isinstance(audio, FLAC):
        return FLACPictures(audio)
    if isinstance(tag, ID3):
        return ID3Pictures(tag)
    if isinstance(audio, (OggVorbis, OggOpus)):
        return VorbisPictures(tag)
    if isinstance(tag, MP4Tags):
        return MP4Pictures(tag)
    if isinstance(audio, ASF):
        return ASFPictures(tag)
    raise TagWriteError(f"pictures are not supported for {type(audio).__name__} files")


def embed(
    path: Path | str,
    data: bytes,
    mime: str,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> None:
    """Replace the front cover of the file at path with the given image."""
    container = TagContainer(path)
    tag = select_tag(container)
    slot = picture_slot(container.audio, tag)
    slot.remove_front_covers()
    slot.add_front_cover(data, mime, width, height)
    container.save(tag)


def _existing_tag(container: TagContainer) -> Any:
    tag = container.primary_tag()
    if tag is None:
        tag = container.any_tag()
    return tag


def strip(path: Path | str) -> int:
    """Remove every embedded picture. Returns how many were removed."""
    container = TagContainer(path)
    tag = _existing_tag(container)
    if tag is None and not isinstance(container.audio, FLAC):
        return 0

    slot = picture_slot(container.audio, tag)
    removed = len(slot.pictures())
    if removed:
        slot.clear()
        container.save(tag)
    return removed


def read_pictures(path: Path | str) -> list[EmbeddedPicture]:
    container = TagContainer(path)
    tag = _existing_tag(container)
    if tag is None and not isinstance(container.audio, FLAC):
        return []
    return picture_slot(container.audio, tag).pictures()
