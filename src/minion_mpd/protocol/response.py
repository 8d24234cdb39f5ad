"""
Response serialization.

Handlers return a list of (key, value) pairs; this module renders songs,
queue entries and status into such pairs and the pairs into protocol text.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from minion_mpd.domain.library import TAG_FIELDS, Song
from minion_mpd.domain.queue import QueueEntry

Pairs = list[tuple[str, str]]

# Tag output order within a song block
SONG_TAG_ORDER = ("Artist", "AlbumArtist", "Title", "Album", "Track", "Date", "Genre", "Disc")


def format_seconds(value: float) -> str:
    """Seconds with millisecond precision, as used by `duration` and `elapsed`."""
    return f"{value:.3f}"


def format_timestamp(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_added(added_at: Optional[str]) -> Optional[str]:
    # SQLite CURRENT_TIMESTAMP is "YYYY-MM-DD HH:MM:SS" in UTC
    if not added_at:
        return None
    return added_at.replace(" ", "T") + "Z"


def song_pairs(
    song: Song,
    entry: Optional[QueueEntry] = None,
    tag_types: Optional[Iterable[str]] = None,
) -> Pairs:
    """Render one song block, with Pos/Id/Prio when it sits in the queue."""
    enabled = set(TAG_FIELDS) if tag_types is None else set(tag_types)
    pairs: Pairs = [("file", song.path), ("Last-Modified", format_timestamp(song.mtime))]

    added = format_added(song.added_at)
    if added:
        pairs.append(("Added", added))

    for tag in SONG_TAG_ORDER:
        value = getattr(song, TAG_FIELDS[tag])
        if tag in enabled and value is not None:
            pairs.append((tag, str(value)))

    if song.duration is not None:
        pairs.append(("Time", str(int(round(song.duration)))))
        pairs.append(("duration", format_seconds(song.duration)))

    if entry is not None:
        if entry.range_start is not None or entry.range_end is not None:
            start = format_seconds(entry.range_start or 0.0)
            end = format_seconds(entry.range_end) if entry.range_end is not None else ""
            pairs.append(("Range", f"{start}-{end}"))
        pairs.append(("Pos", str(entry.position)))
        pairs.append(("Id", str(entry.id)))
        if entry.priority:
            pairs.append(("Prio", str(entry.priority)))

    return pairs


def bool_flag(value: bool) -> str:
    return "1" if value else "0"


def render(pairs: Iterable[tuple[str, str]]) -> str:
    """Render pairs as `key: value` lines (without the final OK)."""
    return "".join(f"{key}: {value}\n" for key, value in pairs)
