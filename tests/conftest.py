"""Shared fixtures: a temporary database and a fully wired server context."""

from pathlib import Path
from typing import Iterable
from unittest.mock import Mock

import pytest

from minion_mpd.context import ClientState, ServerContext
from minion_mpd.core.config import Config
from minion_mpd.core.database import Database
from minion_mpd.domain.library import LibraryStore, Song
from minion_mpd.domain.playback import NullSink

SAMPLE_SONGS = [
    Song(
        path="Artist A/Album X/01 - One.mp3",
        mtime=1000.0,
        title="One",
        artist="Artist A",
        album="Album X",
        track="1",
        genre="Rock",
        duration=180.0,
    ),
    Song(
        path="Artist A/Album X/02 - Two.mp3",
        mtime=1000.0,
        title="Two",
        artist="Artist A",
        album="Album X",
        track="2",
        genre="Rock",
        duration=200.0,
    ),
    Song(
        path="Artist B/Album Y/01 - Three.flac",
        mtime=1000.0,
        title="Three",
        artist="Artist B",
        album="Album Y",
        genre="Jazz",
        duration=240.5,
    ),
    Song(path="loose.ogg", mtime=1000.0, title="Loose", duration=60.0),
]


def commit_songs(library: LibraryStore, songs: Iterable[Song]) -> list[Song]:
    """Write songs as one scan batch and return them with their ids."""
    songs = list(songs)
    generation = library.begin_epoch()
    library.commit_batch(generation, songs, [])
    return [library.get_by_path(song.path) for song in songs]


@pytest.fixture
def db(tmp_path: Path) -> Database:
    """Empty database with the current schema."""
    database = Database(tmp_path / "test.db")
    database.init_database()
    return database


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Configuration pointing at temporary music and data locations."""
    cfg = Config()
    cfg.music.music_directory = str(tmp_path / "music")
    cfg.player.output = "null"
    cfg.database.path = str(tmp_path / "test.db")
    return cfg


@pytest.fixture
def sink() -> NullSink:
    return NullSink()


@pytest.fixture
def ctx(config: Config, db: Database, sink: NullSink):
    """Server context with the null sink, stopped and with an empty queue."""
    context = ServerContext.create(config, sink, db=db)
    yield context
    context.close()


@pytest.fixture
def songs(ctx: ServerContext) -> list[Song]:
    """SAMPLE_SONGS committed to the context's library."""
    return commit_songs(ctx.library, SAMPLE_SONGS)


@pytest.fixture
def client(ctx: ServerContext) -> ClientState:
    """Authenticated protocol client state."""
    return ctx.new_client(wake=Mock())


@pytest.fixture
def sample_songs() -> list[Song]:
    """Songs (without ids) for tests that build their own library."""
    return list(SAMPLE_SONGS)


@pytest.fixture
def write_songs():
    """The commit_songs helper, for tests that need more than SAMPLE_SONGS."""
    return commit_songs
