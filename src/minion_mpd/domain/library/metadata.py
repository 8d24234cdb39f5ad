"""
Tag extraction for library songs.

Reads metadata from audio files using Mutagen, falling back to the filename
when a file carries no usable tags.
"""

from pathlib import Path
from typing import Any, Optional

from loguru import logger
from mutagen import File as MutagenFile
from mutagen import MutagenError

from .models import Song


def get_tag_value(audio_file: Any, tag_names: list[str]) -> Optional[str]:
    """Get tag value, trying multiple possible tag names."""
    for tag_name in tag_names:
        try:
            value = audio_file.get(tag_name)
            if value:
                if isinstance(value, list) and value:
                    return str(value[0])
                return str(value)
        except (KeyError, ValueError):
            # Some formats (like Vorbis) raise ValueError for non-existent keys
            continue
    return None


def extract_metadata_from_filename(relative_path: str) -> dict[str, Any]:
    """Extract basic info from filename as fallback."""
    title = Path(relative_path).stem
    artist = None

    # Try to parse "Artist - Title" format
    if " - " in title:
        artist, title = (part.strip() for part in title.split(" - ", 1))

    return {"title": title, "artist": artist}


def _mp4_pair(value: Optional[str]) -> Optional[str]:
    # MP4 stores track/disc as "(3, 12)"
    if value and value.startswith("(") and value.endswith(")"):
        number, _, total = value[1:-1].partition(",")
        number, total = number.strip(), total.strip()
        if total and total != "0":
            return f"{number}/{total}"
        return number
    return value


def extract_song_metadata(absolute_path: Path, relative_path: str, mtime: float) -> Song:
    """Extract metadata from an audio file using mutagen.

    Returns:
        Song without id/generation; filename-derived title/artist when the
        file has no readable tags
    """
    try:
        audio_file = MutagenFile(absolute_path)
    except (MutagenError, OSError) as e:
        logger.warning(f"Cannot read tags from {relative_path}: {e}")
        audio_file = None

    if audio_file is None:
        logger.debug(f"No tag reader for {relative_path}, using filename")
        fallback = extract_metadata_from_filename(relative_path)
        return Song(
            path=relative_path,
            mtime=mtime,
            title=fallback["title"],
            artist=fallback["artist"],
        )

    # ID3 (MP3), MP4, and Vorbis/Opus tags (lowercase)
    title = get_tag_value(audio_file, ["TIT2", "\xa9nam", "TITLE", "title"])
    artist = get_tag_value(audio_file, ["TPE1", "\xa9ART", "ARTIST", "artist"])
    album = get_tag_value(audio_file, ["TALB", "\xa9alb", "ALBUM", "album"])
    album_artist = get_tag_value(
        audio_file, ["TPE2", "aART", "ALBUMARTIST", "albumartist"]
    )
    genre = get_tag_value(audio_file, ["TCON", "\xa9gen", "GENRE", "genre"])
    date = get_tag_value(audio_file, ["TDRC", "\xa9day", "DATE", "YEAR", "date", "year"])
    track = _mp4_pair(
        get_tag_value(audio_file, ["TRCK", "trkn", "TRACKNUMBER", "tracknumber"])
    )
    disc = _mp4_pair(
        get_tag_value(audio_file, ["TPOS", "disk", "DISCNUMBER", "discnumber"])
    )

    duration = None
    if getattr(audio_file, "info", None) is not None:
        duration = getattr(audio_file.info, "length", None)

    if not title:
        fallback = extract_metadata_from_filename(relative_path)
        title = fallback["title"]
        artist = artist or fallback["artist"]

    return Song(
        path=relative_path,
        mtime=mtime,
        title=title,
        artist=artist,
        album=album,
        album_artist=album_artist,
        track=track,
        disc=disc,
        date=date,
        genre=genre,
        duration=duration,
    )
