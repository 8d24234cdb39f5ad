"""
Music library domain models.

Contains data structures for representing songs known to the library.
"""

from typing import NamedTuple, Optional


class Song(NamedTuple):
    """One file observed in the music directory during a scan.

    `path` is relative to the music directory and unique across the library.
    `generation` is the scan epoch that last confirmed the file exists.
    """

    path: str
    mtime: float
    id: Optional[int] = None  # Library row id, assigned on first insert
    generation: int = 0
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    album_artist: Optional[str] = None
    track: Optional[str] = None
    disc: Optional[str] = None
    date: Optional[str] = None
    genre: Optional[str] = None
    duration: Optional[float] = None  # in seconds
    tombstone: bool = False  # stale but still referenced by the queue
    added_at: Optional[str] = None


# Protocol tag name -> Song attribute
TAG_FIELDS: dict[str, str] = {
    "Artist": "artist",
    "Album": "album",
    "AlbumArtist": "album_artist",
    "Title": "title",
    "Track": "track",
    "Genre": "genre",
    "Date": "date",
    "Disc": "disc",
}


class ScanStats(NamedTuple):
    """Outcome of one library scan."""

    generation: int
    added: int = 0
    updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    tombstoned: int = 0
    cancelled: bool = False

    @property
    def modified(self) -> bool:
        return bool(self.added or self.updated or self.deleted or self.tombstoned)
