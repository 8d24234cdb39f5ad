"""Tests for tag extraction."""

from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

from mutagen import MutagenError

from minion_mpd.domain.library.metadata import (
    _mp4_pair,
    extract_metadata_from_filename,
    extract_song_metadata,
)


class FakeAudio(dict):
    """Mutagen-like file object: tag mapping plus stream info."""

    info = SimpleNamespace(length=123.5)


class TestFilenameFallback:
    def test_artist_title_split(self):
        result = extract_metadata_from_filename("Some Dir/Artist Name - Song Title.mp3")
        assert result == {"title": "Song Title", "artist": "Artist Name"}

    def test_plain_name(self):
        result = extract_metadata_from_filename("track01.flac")
        assert result == {"title": "track01", "artist": None}


class TestMp4Pair:
    def test_number_and_total(self):
        assert _mp4_pair("(3, 12)") == "3/12"

    def test_zero_total(self):
        assert _mp4_pair("(3, 0)") == "3"

    def test_plain_value_untouched(self):
        assert _mp4_pair("7/10") == "7/10"
        assert _mp4_pair(None) is None


class TestExtractSongMetadata:
    """Tests for extract_song_metadata with mutagen mocked."""

    def test_id3_tags(self):
        audio = FakeAudio(
            {
                "TIT2": ["Title"],
                "TPE1": ["Artist"],
                "TALB": ["Album"],
                "TRCK": ["4/10"],
                "TDRC": ["2001"],
            }
        )
        with patch("minion_mpd.domain.library.metadata.MutagenFile", return_value=audio):
            song = extract_song_metadata(Path("/m/a.mp3"), "a.mp3", 42.0)

        assert song.path == "a.mp3"
        assert song.mtime == 42.0
        assert (song.title, song.artist, song.album) == ("Title", "Artist", "Album")
        assert song.track == "4/10"
        assert song.date == "2001"
        assert song.duration == 123.5
        assert song.id is None

    def test_vorbis_lowercase_tags(self):
        audio = FakeAudio({"title": ["Low"], "albumartist": ["Various"]})
        with patch("minion_mpd.domain.library.metadata.MutagenFile", return_value=audio):
            song = extract_song_metadata(Path("/m/b.ogg"), "b.ogg", 1.0)
        assert song.title == "Low"
        assert song.album_artist == "Various"

    def test_missing_title_uses_filename(self):
        audio = FakeAudio({"TPE1": ["Tagged Artist"]})
        with patch("minion_mpd.domain.library.metadata.MutagenFile", return_value=audio):
            song = extract_song_metadata(Path("/m/x - y.mp3"), "x - y.mp3", 1.0)
        assert song.title == "y"
        assert song.artist == "Tagged Artist"

    def test_unreadable_file_falls_back(self):
        with patch(
            "minion_mpd.domain.library.metadata.MutagenFile",
            side_effect=MutagenError("broken"),
        ):
            song = extract_song_metadata(Path("/m/Band - Tune.mp3"), "Band - Tune.mp3", 1.0)
        assert (song.title, song.artist) == ("Tune", "Band")
        assert song.duration is None

    def test_unknown_format_falls_back(self):
        with patch("minion_mpd.domain.library.metadata.MutagenFile", return_value=None):
            song = extract_song_metadata(Path("/m/odd.wav"), "odd.wav", 1.0)
        assert song.title == "odd"
