from __future__ import annotations

import itertools
import random
from pathlib import Path

from music_covers.formats import classify, is_media_file, media_file
from music_covers.models import MediaFormat
from music_covers.scanner import discover, first_number, sort_tracks, track_sort_key


def _names(paths: list[Path]) -> list[str]:
    return [path.name for path in paths]


def test_classify_is_case_insensitive() -> None:
    assert classify(Path("a/Song.MP3")) is MediaFormat.MP3
    assert classify(Path("a/clip.webm")) is MediaFormat.WEBM
    assert classify(Path("a/notes.txt")) is MediaFormat.UNKNOWN
    assert classify(Path("a/no_extension")) is MediaFormat.UNKNOWN


def test_media_file_carries_its_format() -> None:
    song = media_file(Path("a/01.Flac"))

    assert song.path == Path("a/01.Flac")
    assert song.media_format is MediaFormat.FLAC
    assert not media_file(Path("a/cover.jpg")).media_format.is_known


def test_appledouble_sidecars_are_not_media() -> None:
    assert not is_media_file(Path("album/._01 - Song.flac"))
    assert is_media_file(Path("album/01 - Song.flac"))


def test_first_number_takes_first_run_only() -> None:
    assert first_number("disc 2 track 07") == (2, 1)
    assert first_number("007") == (7, 3)
    assert first_number("intro") is None


def test_numeric_order_beats_lexicographic() -> None:
    paths = [Path("d/2 - Song.mp3"), Path("d/10 - Song.mp3"), Path("d/1 - Song.mp3")]
    assert _names(sort_tracks(paths)) == ["1 - Song.mp3", "2 - Song.mp3", "10 - Song.mp3"]


def test_zero_padded_number_sorts_first_on_tie() -> None:
    assert _names(sort_tracks([Path("d/7.mp3"), Path("d/007.mp3")])) == ["007.mp3", "7.mp3"]


def test_numbered_names_sort_before_plain_names() -> None:
    paths = [Path("d/Bonus.mp3"), Path("d/Alpha.mp3"), Path("d/3 Song.mp3")]
    assert _names(sort_tracks(paths)) == ["3 Song.mp3", "Alpha.mp3", "Bonus.mp3"]


def test_sort_is_deterministic_and_total() -> None:
    paths = [
        Path("d/10 b.mp3"),
        Path("d/10 a.mp3"),
        Path("d/010 a.mp3"),
        Path("d/x.mp3"),
        Path("d/x.flac"),
        Path("d/2.mp3"),
        Path("d/b.mp3"),
    ]
    expected = sort_tracks(paths)
    rng = random.Random(4)
    for _ in range(20):
        shuffled = paths[:]
        rng.shuffle(shuffled)
        assert sort_tracks(shuffled) == expected

    keys = [track_sort_key(path) for path in paths]
    assert len(set(keys)) == len(keys)
    for a, b, c in itertools.permutations(keys, 3):
        if a < b and b < c:
            assert a < c


def test_discover_groups_known_files_by_parent(tmp_path: Path) -> None:
    album = tmp_path / "Album"
    disc = album / "Disc 2"
    disc.mkdir(parents=True)
    for name in ("2 - b.mp3", "10 - c.flac", "1 - a.m4a", "notes.txt", "._1 - a.m4a"):
        (album / name).write_bytes(b"x")
    (disc / "01.ogg").write_bytes(b"x")

    result = discover(tmp_path)

    assert result.total_files == 4
    assert list(result.groups) == [album, disc]
    assert _names(result.groups[album]) == ["1 - a.m4a", "2 - b.mp3", "10 - c.flac"]
    assert _names(result.groups[disc]) == ["01.ogg"]
    assert result.warnings == []


def test_discover_verbose_reports_each_classified_file(tmp_path: Path, capsys) -> None:
    (tmp_path / "01.FLAC").write_bytes(b"x")
    (tmp_path / "cover.jpg").write_bytes(b"x")

    discover(tmp_path, verbose=True)

    out = capsys.readouterr().out
    assert "[scan] flac: 01.FLAC" in out
    assert "cover.jpg" not in out


def test_discover_single_file(tmp_path: Path) -> None:
    song = tmp_path / "song.opus"
    song.write_bytes(b"x")

    result = discover(song)

    assert result.groups == {tmp_path: [song]}


def test_discover_single_unsupported_file_is_empty(tmp_path: Path) -> None:
    notes = tmp_path / "notes.txt"
    notes.write_text("hi")

    result = discover(notes)

    assert result.groups == {}
    assert result.warnings


def test_discover_missing_path_is_empty_not_an_error(tmp_path: Path) -> None:
    result = discover(tmp_path / "missing")

    assert result.groups == {}
    assert any("does not exist" in warning for warning in result.warnings)
