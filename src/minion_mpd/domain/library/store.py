"""
Persistent song library.

Songs are written by the scanner in batches tagged with a scan generation.
At the end of a scan, rows the scan did not confirm are deleted, or
tombstoned while a queue entry still points at them.
"""

import time
from typing import Iterable, Optional

from loguru import logger

from minion_mpd.core.database import Database
from minion_mpd.core.locks import RWLock

from .models import TAG_FIELDS, Song

SONG_COLUMNS = (
    "id, path, mtime, generation, title, artist, album, album_artist, "
    "track, disc, date, genre, duration, tombstone, added_at"
)


class SongNotFound(Exception):
    """Raised when a path or id is not in the library."""

    pass


def _row_to_song(row) -> Song:
    return Song(
        id=row["id"],
        path=row["path"],
        mtime=row["mtime"],
        generation=row["generation"],
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        album_artist=row["album_artist"],
        track=row["track"],
        disc=row["disc"],
        date=row["date"],
        genre=row["genre"],
        duration=row["duration"],
        tombstone=bool(row["tombstone"]),
        added_at=row["added_at"],
    )


def normalize_uri(uri: str) -> str:
    """Strip slashes so '' means the music directory root."""
    return uri.strip().strip("/")


def _under(prefix: str) -> tuple[str, tuple]:
    """SQL condition matching a path equal to or below `prefix`."""
    if not prefix:
        return "1", ()
    return "(path = ? OR substr(path, 1, ?) = ?)", (prefix, len(prefix) + 1, prefix + "/")


def song_matches(song: Song, filters: list[tuple[str, str]], exact: bool) -> bool:
    """Check a song against legacy `TAG VALUE` filter pairs.

    `exact` compares case-sensitively for equality (find); otherwise a
    case-insensitive substring match is used (search).
    """
    for tag, needle in filters:
        tag = tag.lower()
        if tag == "file":
            candidates = [song.path]
        elif tag == "base":
            base = normalize_uri(needle)
            if not (not base or song.path == base or song.path.startswith(base + "/")):
                return False
            continue
        elif tag == "any":
            candidates = [song.path] + [getattr(song, f) for f in TAG_FIELDS.values()]
        else:
            field = {name.lower(): attr for name, attr in TAG_FIELDS.items()}.get(tag)
            if field is None:
                raise ValueError(f"Unknown tag type: {tag}")
            candidates = [getattr(song, field)]

        values = [str(c) for c in candidates if c is not None]
        if exact:
            if not any(v == needle for v in values):
                # An empty needle matches songs that lack the tag
                if not (needle == "" and not values):
                    return False
        else:
            lowered = needle.lower()
            if not any(lowered in v.lower() for v in values):
                return False
    return True


class LibraryStore:
    """Song table plus the library generation counter."""

    def __init__(self, db: Database):
        self.db = db
        self.lock = RWLock()

    # -- generation / scan epochs -------------------------------------------

    @property
    def generation(self) -> int:
        with self.lock.read(), self.db.connect() as conn:
            row = conn.execute("SELECT generation FROM library_state WHERE id = 1").fetchone()
            return row["generation"] if row else 0

    def begin_epoch(self) -> int:
        """Start a new scan generation and return it."""
        with self.lock.write(), self.db.transaction() as conn:
            conn.execute("UPDATE library_state SET generation = generation + 1 WHERE id = 1")
            row = conn.execute("SELECT generation FROM library_state WHERE id = 1").fetchone()
            generation = row["generation"]
        logger.debug(f"Library epoch {generation} started")
        return generation

    def known_files(self, prefix: str = "") -> dict[str, tuple[int, float]]:
        """Map path -> (song id, mtime) for songs below `prefix`."""
        condition, params = _under(normalize_uri(prefix))
        with self.lock.read(), self.db.connect() as conn:
            rows = conn.execute(
                f"SELECT id, path, mtime FROM songs WHERE {condition}", params
            ).fetchall()
        return {row["path"]: (row["id"], row["mtime"]) for row in rows}

    def commit_batch(
        self, generation: int, songs: Iterable[Song], confirmed_ids: Iterable[int]
    ) -> None:
        """Write one scan batch: upsert changed songs, stamp unchanged ones.

        Args:
            generation: Epoch returned by begin_epoch()
            songs: New or changed songs (tags freshly extracted)
            confirmed_ids: Unchanged songs that still exist on disk
        """
        songs = list(songs)
        confirmed_ids = list(confirmed_ids)
        with self.lock.write(), self.db.transaction() as conn:
            conn.executemany(
                """
                INSERT INTO songs (path, mtime, generation, title, artist, album,
                                   album_artist, track, disc, date, genre, duration)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    mtime = excluded.mtime,
                    generation = excluded.generation,
                    title = excluded.title,
                    artist = excluded.artist,
                    album = excluded.album,
                    album_artist = excluded.album_artist,
                    track = excluded.track,
                    disc = excluded.disc,
                    date = excluded.date,
                    genre = excluded.genre,
                    duration = excluded.duration,
                    tombstone = FALSE
                """,
                [
                    (
                        s.path,
                        s.mtime,
                        generation,
                        s.title,
                        s.artist,
                        s.album,
                        s.album_artist,
                        s.track,
                        s.disc,
                        s.date,
                        s.genre,
                        s.duration,
                    )
                    for s in songs
                ],
            )
            conn.executemany(
                "UPDATE songs SET generation = ?, tombstone = FALSE WHERE id = ?",
                [(generation, song_id) for song_id in confirmed_ids],
            )

    def finish_epoch(self, generation: int, prefix: str = "") -> tuple[int, int]:
        """Collect songs below `prefix` that the scan did not confirm.

        Returns:
            (deleted, tombstoned) counts
        """
        condition, params = _under(normalize_uri(prefix))
        with self.lock.write(), self.db.transaction() as conn:
            # Both statements run in one write transaction, so a queue insert
            # cannot slip in between the reference check and the delete
            tombstoned = conn.execute(
                f"""
                UPDATE songs SET tombstone = TRUE
                WHERE generation < ? AND tombstone = FALSE AND {condition}
                  AND id IN (SELECT song_id FROM queue)
                """,
                (generation, *params),
            ).rowcount
            deleted = conn.execute(
                f"""
                DELETE FROM songs
                WHERE generation < ? AND tombstone = FALSE AND {condition}
                """,
                (generation, *params),
            ).rowcount
            conn.execute(
                "UPDATE library_state SET last_update_at = ? WHERE id = 1", (time.time(),)
            )

        logger.info(
            f"Library epoch {generation} closed: {deleted} deleted, {tombstoned} tombstoned"
        )
        return deleted, tombstoned

    def tombstoned_ids(self) -> list[int]:
        with self.lock.read(), self.db.connect() as conn:
            rows = conn.execute("SELECT id FROM songs WHERE tombstone = TRUE").fetchall()
        return [row["id"] for row in rows]

    def delete_unreferenced_tombstones(self) -> int:
        """Drop tombstoned songs no queue entry refers to any more."""
        with self.lock.write(), self.db.transaction() as conn:
            cursor = conn.execute(
                """
                DELETE FROM songs
                WHERE tombstone = TRUE AND id NOT IN (SELECT song_id FROM queue)
                """
            )
            return cursor.rowcount

    # -- lookups --------------------------------------------------------------

    def get(self, song_id: int) -> Song:
        with self.lock.read(), self.db.connect() as conn:
            row = conn.execute(
                f"SELECT {SONG_COLUMNS} FROM songs WHERE id = ?", (song_id,)
            ).fetchone()
        if row is None:
            raise SongNotFound(f"No song with id {song_id}")
        return _row_to_song(row)

    def get_many(self, song_ids: Iterable[int]) -> dict[int, Song]:
        ids = sorted(set(song_ids))
        if not ids:
            return {}
        songs: dict[int, Song] = {}
        with self.lock.read(), self.db.connect() as conn:
            # Stay under SQLite's bound-parameter limit
            for start in range(0, len(ids), 500):
                chunk = ids[start : start + 500]
                placeholders = ",".join("?" * len(chunk))
                for row in conn.execute(
                    f"SELECT {SONG_COLUMNS} FROM songs WHERE id IN ({placeholders})", chunk
                ):
                    songs[row["id"]] = _row_to_song(row)
        return songs

    def get_by_path(self, path: str) -> Song:
        with self.lock.read(), self.db.connect() as conn:
            row = conn.execute(
                f"SELECT {SONG_COLUMNS} FROM songs WHERE path = ? AND tombstone = FALSE",
                (normalize_uri(path),),
            ).fetchone()
        if row is None:
            raise SongNotFound(f"No such song: {path}")
        return _row_to_song(row)

    def songs_under(self, uri: str) -> list[Song]:
        """All live songs at or below a directory, in path order."""
        condition, params = _under(normalize_uri(uri))
        with self.lock.read(), self.db.connect() as conn:
            rows = conn.execute(
                f"""
                SELECT {SONG_COLUMNS} FROM songs
                WHERE tombstone = FALSE AND {condition}
                ORDER BY path
                """,
                params,
            ).fetchall()
        return [_row_to_song(row) for row in rows]

    def resolve_uri(self, uri: str) -> list[Song]:
        """Songs addressed by a protocol URI: one file, or a whole directory."""
        if normalize_uri(uri):
            try:
                return [self.get_by_path(uri)]
            except SongNotFound:
                pass
        songs = self.songs_under(uri)
        if not songs:
            raise SongNotFound(f"No such directory: {uri}")
        return songs

    def find(self, filters: list[tuple[str, str]], exact: bool = True) -> list[Song]:
        return [s for s in self.songs_under("") if song_matches(s, filters, exact)]

    def list_tag(
        self, tag: str, filters: Optional[list[tuple[str, str]]] = None
    ) -> list[str]:
        """Distinct values of one tag, optionally restricted by filters."""
        if tag.lower() == "file":
            field = "path"
        else:
            field = {name.lower(): attr for name, attr in TAG_FIELDS.items()}.get(tag.lower())
            if field is None:
                raise ValueError(f"Unknown tag type: {tag}")
        songs = self.find(filters or [], exact=True)
        return sorted({getattr(s, field) for s in songs if getattr(s, field) is not None})

    def list_directory(self, uri: str) -> tuple[list[str], list[Song]]:
        """Immediate subdirectories and songs of a directory (lsinfo).

        Raises:
            SongNotFound: if nothing lives at or below `uri`
        """
        prefix = normalize_uri(uri)
        songs = self.songs_under(prefix)
        if prefix and not songs:
            raise SongNotFound(f"No such directory: {uri}")
        if len(songs) == 1 and songs[0].path == prefix:
            return [], songs

        depth = prefix.count("/") + 1 if prefix else 0
        directories: set[str] = set()
        files: list[Song] = []
        for song in songs:
            parts = song.path.split("/")
            if len(parts) == depth + 1:
                files.append(song)
            elif len(parts) > depth + 1:
                directories.add("/".join(parts[: depth + 1]))
        return sorted(directories), files

    def list_all(self, uri: str = "") -> list[tuple[str, str]]:
        """Recursive listing as ('directory' | 'file', path) pairs."""
        prefix = normalize_uri(uri)
        songs = self.songs_under(prefix)
        if prefix and not songs:
            raise SongNotFound(f"No such directory: {uri}")

        items: list[tuple[str, str]] = []
        seen: set[str] = set()
        for song in songs:
            parts = song.path.split("/")
            for i in range(1, len(parts)):
                directory = "/".join(parts[:i])
                if directory not in seen and (not prefix or len(directory) > len(prefix)):
                    seen.add(directory)
                    items.append(("directory", directory))
            items.append(("file", song.path))
        return items

    def stats(self) -> dict:
        with self.lock.read(), self.db.connect() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS songs,
                       COUNT(DISTINCT artist) AS artists,
                       COUNT(DISTINCT album) AS albums,
                       COALESCE(SUM(duration), 0) AS db_playtime
                FROM songs WHERE tombstone = FALSE
                """
            ).fetchone()
            state = conn.execute(
                "SELECT last_update_at FROM library_state WHERE id = 1"
            ).fetchone()
        return {
            "artists": row["artists"],
            "albums": row["albums"],
            "songs": row["songs"],
            "db_playtime": int(row["db_playtime"]),
            "db_update": int(state["last_update_at"] or 0) if state else 0,
        }
