#!/usr/bin/env python3
"""Tests for database schema setup and error wrapping."""

import sqlite3
from pathlib import Path

import pytest

from minion_mpd.core.database import SCHEMA_VERSION, Database, PersistenceError


def _tables(db: Database) -> set[str]:
    with db.connect() as conn:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row["name"] for row in rows}


class TestInitDatabase:
    """Tests for Database.init_database."""

    def test_creates_all_tables(self, tmp_path: Path):
        db = Database(tmp_path / "data" / "minion.db")
        db.init_database()

        assert {"songs", "queue", "player_state", "library_state", "schema_version"} <= _tables(db)

    def test_singleton_rows_present(self, db: Database):
        """player_state and library_state start with their single row."""
        with db.connect() as conn:
            player = conn.execute("SELECT * FROM player_state").fetchall()
            library = conn.execute("SELECT * FROM library_state").fetchall()
        assert len(player) == 1
        assert player[0]["next_entry_id"] == 1
        assert player[0]["transport"] == "stop"
        assert len(library) == 1
        assert library[0]["generation"] == 0

    def test_idempotent(self, db: Database):
        """Running init twice keeps a single schema version row."""
        db.init_database()
        with db.connect() as conn:
            versions = conn.execute("SELECT version FROM schema_version").fetchall()
        assert [row["version"] for row in versions] == [SCHEMA_VERSION]

    def test_migrates_v1_songs_table(self, tmp_path: Path):
        """A v1 database gains the tombstone column."""
        path = tmp_path / "old.db"
        conn = sqlite3.connect(path)
        conn.execute("CREATE TABLE schema_version (version INTEGER PRIMARY KEY)")
        conn.execute("INSERT INTO schema_version (version) VALUES (1)")
        conn.execute(
            "CREATE TABLE songs (id INTEGER PRIMARY KEY, path TEXT UNIQUE NOT NULL, "
            "mtime REAL NOT NULL, generation INTEGER NOT NULL)"
        )
        conn.execute("INSERT INTO songs (path, mtime, generation) VALUES ('a.mp3', 1.0, 1)")
        conn.commit()
        conn.close()

        db = Database(path)
        db.init_database()

        with db.connect() as conn:
            columns = {row["name"] for row in conn.execute("PRAGMA table_info(songs)")}
            row = conn.execute("SELECT tombstone FROM songs WHERE path = 'a.mp3'").fetchone()
            version = conn.execute("SELECT MAX(version) AS v FROM schema_version").fetchone()
        assert "tombstone" in columns
        assert row["tombstone"] == 0
        assert version["v"] == SCHEMA_VERSION


class TestPersistenceError:
    """SQLite failures surface as PersistenceError."""

    def test_bad_sql_is_wrapped(self, db: Database):
        with pytest.raises(PersistenceError):
            with db.connect() as conn:
                conn.execute("SELECT * FROM no_such_table")

    def test_unopenable_path(self, tmp_path: Path):
        """A directory cannot be opened as a database."""
        db = Database(tmp_path)
        with pytest.raises(PersistenceError):
            with db.connect() as conn:
                conn.execute("SELECT 1")

    def test_failed_transaction_rolls_back(self, db: Database):
        """Nothing from a failed transaction is committed."""
        with pytest.raises(PersistenceError):
            with db.transaction() as conn:
                conn.execute("UPDATE library_state SET generation = 5 WHERE id = 1")
                conn.execute("INSERT INTO no_such_table VALUES (1)")

        with db.connect() as conn:
            row = conn.execute("SELECT generation FROM library_state").fetchone()
        assert row["generation"] == 0
