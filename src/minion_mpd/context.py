"""Server context for explicit state passing.

This module provides the ServerContext dataclass that wires the stores, the
playback machine and the idle broker together. It is passed explicitly to
every command handler; nothing lives in module globals, so tests can build
as many independent contexts as they like.
"""

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from minion_mpd.core.config import Config
from minion_mpd.core.database import Database, get_database_path
from minion_mpd.domain.library import TAG_FIELDS, LibraryStore, ScanStats, UpdateManager
from minion_mpd.domain.playback import AudioSink, PlaybackMachine
from minion_mpd.domain.queue import QueueStore
from minion_mpd.protocol.idle import IdleBroker, IdleSubscriber


@dataclass
class ClientState:
    """Per-connection protocol state.

    Attributes:
        subscriber: Idle subscriber collecting changes for this client
        tag_types: Tags included in song blocks (`tagtypes` command)
        authenticated: Whether the configured password was given
        closing: Set by `close`; the connection ends after the reply
    """

    subscriber: IdleSubscriber
    tag_types: set[str] = field(default_factory=lambda: set(TAG_FIELDS))
    authenticated: bool = False
    closing: bool = False


@dataclass
class ServerContext:
    """Everything a command handler can touch.

    Attributes:
        config: Server configuration
        db: SQLite handle shared by all stores
        library: Song library
        queue: Play queue
        machine: Playback state machine
        broker: Idle notification broker
        updates: Background library scans
        lock: Shared re-entrant command lock; serializes mutating commands,
            command lists and song-end events
        started_at: Server start time (for `stats` uptime)
        on_fatal: Called on unrecoverable persistence failures
    """

    config: Config
    db: Database
    library: LibraryStore
    queue: QueueStore
    machine: PlaybackMachine
    broker: IdleBroker
    updates: UpdateManager
    lock: threading.RLock
    started_at: float = field(default_factory=time.time)
    on_fatal: Optional[Callable[[Exception], None]] = None

    @classmethod
    def create(
        cls, config: Config, sink: AudioSink, db: Optional[Database] = None
    ) -> "ServerContext":
        """Open the database, load the stores and wire them together.

        Args:
            config: Server configuration
            sink: Audio output driven by the machine
            db: Database to use (default: the configured path)

        Returns:
            Loaded, reconciled ServerContext in the stopped state
        """
        db = db or Database(get_database_path(config))
        db.init_database()

        lock = threading.RLock()
        broker = IdleBroker()
        library = LibraryStore(db)
        queue = QueueStore(db, max_length=config.queue.max_length)
        machine = PlaybackMachine(
            db,
            queue,
            library,
            sink,
            music_directory=Path(config.music.music_directory).expanduser(),
            lock=lock,
            notify=broker.notify,
        )
        # Registered after the machine so its current entry is settled first
        queue.add_listener(lambda change: broker.notify("playlist"))
        updates = UpdateManager(library, config.music, notify=broker.notify)

        ctx = cls(
            config=config,
            db=db,
            library=library,
            queue=queue,
            machine=machine,
            broker=broker,
            updates=updates,
            lock=lock,
        )
        machine.on_fatal = ctx.fatal
        updates.on_finished = ctx._scan_finished
        updates.on_fatal = ctx.fatal

        queue.load()
        machine.load()
        ctx.reconcile_library()
        return ctx

    def fatal(self, error: Exception) -> None:
        """Report an unrecoverable failure to whoever runs the server."""
        logger.critical(f"Fatal error: {error}")
        if self.on_fatal is not None:
            self.on_fatal(error)

    def _scan_finished(self, stats: ScanStats) -> None:
        self.reconcile_library()

    def reconcile_library(self) -> int:
        """Purge queue entries whose songs were tombstoned, then drop the tombstones.

        Returns:
            Number of queue entries removed
        """
        with self.lock:
            generation = self.library.generation
            removed = 0
            tombstoned = self.library.tombstoned_ids()
            if tombstoned:
                removed = self.queue.remove_song_ids(tombstoned)
                deleted = self.library.delete_unreferenced_tombstones()
                logger.info(
                    f"Reconciled queue with library generation {generation}: "
                    f"{removed} entries removed, {deleted} songs deleted"
                )
            if generation != self.machine.generation:
                self.machine.set_generation(generation)
            return removed

    def new_client(self, wake: Callable[[], None]) -> ClientState:
        return ClientState(
            subscriber=self.broker.subscribe(wake),
            authenticated=self.config.server.password is None,
        )

    def close(self) -> None:
        """Stop scans and playback and release the sink."""
        self.updates.cancel()
        self.updates.join(timeout=5.0)
        with self.lock:
            self.machine.stop()
            self.machine.sink.close()
