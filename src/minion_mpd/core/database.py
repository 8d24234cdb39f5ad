"""
SQLite persistence for minion-mpd

Holds the song library, the play queue and the singleton player state. Every
store writes through on each mutation; nothing is buffered in memory.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import Config, get_data_dir

# Database schema version for migrations
SCHEMA_VERSION = 2


class PersistenceError(Exception):
    """Raised when the database is unreachable or corrupt.

    Unrecoverable: the server reports it to every client and shuts down.
    """

    pass


def get_database_path(config: Optional[Config] = None) -> Path:
    """Get the path to the SQLite database file."""
    if config is not None and config.database.path:
        return Path(config.database.path)
    return get_data_dir() / "minion-mpd.db"


class Database:
    """Handle on the SQLite file. Each operation opens its own connection."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @contextmanager
    def connect(self):
        """Get a database connection with proper cleanup and concurrency support."""
        try:
            conn = sqlite3.connect(self.path, timeout=30.0)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.path}: {e}") from e
        conn.row_factory = sqlite3.Row

        try:
            # WAL mode lets client readers run during a library batch commit
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Database error on {self.path}: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self):
        """Connection that commits when the block completes without error."""
        with self.connect() as conn:
            yield conn
            conn.commit()

    def init_database(self) -> None:
        """Create the schema, or migrate an older one to SCHEMA_VERSION."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

        with self.connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """)
            row = conn.execute("SELECT MAX(version) AS version FROM schema_version").fetchone()
            current_version = row["version"] if row and row["version"] is not None else 0

            if current_version == 0:
                _create_schema(conn)
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
                )
                conn.commit()
                logger.info(f"Created database schema v{SCHEMA_VERSION} at {self.path}")
            elif current_version < SCHEMA_VERSION:
                logger.info(
                    f"Migrating database from v{current_version} to v{SCHEMA_VERSION}"
                )
                migrate_database(conn, current_version)
                conn.execute(
                    "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                    (SCHEMA_VERSION,),
                )
                conn.commit()


def _create_schema(conn: sqlite3.Connection) -> None:
    # Songs are keyed by path relative to the music directory
    conn.execute("""
        CREATE TABLE IF NOT EXISTS songs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            path TEXT UNIQUE NOT NULL,
            mtime REAL NOT NULL,
            generation INTEGER NOT NULL,
            title TEXT,
            artist TEXT,
            album TEXT,
            album_artist TEXT,
            track TEXT,
            disc TEXT,
            date TEXT,
            genre TEXT,
            duration REAL,
            tombstone BOOLEAN NOT NULL DEFAULT FALSE,
            added_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_generation ON songs (generation)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_artist ON songs (artist)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_album ON songs (album)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_tombstone ON songs (tombstone)")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS library_state (
            id INTEGER PRIMARY KEY CHECK (id = 1), -- Ensure only one row
            generation INTEGER NOT NULL DEFAULT 0,
            last_update_at REAL
        )
    """)
    conn.execute("INSERT OR IGNORE INTO library_state (id, generation) VALUES (1, 0)")

    # Position is dense 0..N-1; not UNIQUE because reorders rewrite it row by row
    conn.execute("""
        CREATE TABLE IF NOT EXISTS queue (
            id INTEGER PRIMARY KEY,
            song_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            priority INTEGER NOT NULL DEFAULT 0,
            range_start REAL,
            range_end REAL,
            FOREIGN KEY (song_id) REFERENCES songs (id)
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_queue_position ON queue (position)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_queue_song ON queue (song_id)")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS player_state (
            id INTEGER PRIMARY KEY CHECK (id = 1), -- Ensure only one row
            current_position INTEGER,
            transport TEXT NOT NULL DEFAULT 'stop',
            repeat BOOLEAN NOT NULL DEFAULT FALSE,
            random BOOLEAN NOT NULL DEFAULT FALSE,
            single BOOLEAN NOT NULL DEFAULT FALSE,
            consume BOOLEAN NOT NULL DEFAULT FALSE,
            volume INTEGER NOT NULL DEFAULT 50,
            generation INTEGER NOT NULL DEFAULT 0,
            next_entry_id INTEGER NOT NULL DEFAULT 1,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    conn.execute("INSERT OR IGNORE INTO player_state (id) VALUES (1)")


def migrate_database(conn: sqlite3.Connection, current_version: int) -> None:
    """Migrate database from current_version to latest schema."""
    if current_version < 2:
        # Migration from v1 to v2: tombstones for songs still referenced by the queue
        try:
            conn.execute(
                "ALTER TABLE songs ADD COLUMN tombstone BOOLEAN NOT NULL DEFAULT FALSE"
            )
        except sqlite3.OperationalError as e:
            if "duplicate column name" not in str(e).lower():
                raise

        conn.execute("CREATE INDEX IF NOT EXISTS idx_songs_tombstone ON songs (tombstone)")
        conn.commit()
