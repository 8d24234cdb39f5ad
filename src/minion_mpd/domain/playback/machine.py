"""
Playback state machine.

Owns the transport state, the mode flags and the volume, and decides which
queue entry plays next. The current entry is tracked by its queue id; its
position is looked up on every read so queue reorders never confuse it.

Every public method runs under the shared command lock and persists the
player state before returning.
"""

import threading
from functools import partial
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from loguru import logger

from minion_mpd.core.database import Database, PersistenceError
from minion_mpd.domain.library import LibraryStore, SongNotFound
from minion_mpd.domain.queue import QueueChange, QueueEntry, QueueStore

from .sink import AudioSink, SinkError
from .state import PlayerState, Transport, load_player_state, save_player_state


class NotPlaying(Exception):
    """Raised for operations that need a current song when there is none."""

    pass


class PlayerStatus(NamedTuple):
    """Snapshot of the machine for the `status` command."""

    state: Transport
    repeat: bool
    random: bool
    single: bool
    consume: bool
    volume: int
    song: Optional[int] = None
    song_id: Optional[int] = None
    next_song: Optional[int] = None
    next_song_id: Optional[int] = None
    elapsed: Optional[float] = None
    duration: Optional[float] = None
    error: Optional[str] = None


class PlaybackMachine:
    """Transport state machine driving an audio sink over the play queue."""

    def __init__(
        self,
        db: Database,
        queue: QueueStore,
        library: LibraryStore,
        sink: AudioSink,
        music_directory: Path,
        lock: Optional[threading.RLock] = None,
        notify: Optional[Callable[[str], None]] = None,
        on_fatal: Optional[Callable[[Exception], None]] = None,
    ):
        self.db = db
        self.queue = queue
        self.library = library
        self.sink = sink
        self.music_directory = Path(music_directory)
        self.lock = lock or threading.RLock()
        self._notify = notify or (lambda subsystem: None)
        self.on_fatal = on_fatal
        self._state = PlayerState()
        self._current_id: Optional[int] = None
        self._token = 0  # bumped on every start/stop so stale song-end events are ignored
        self.error: Optional[str] = None
        queue.add_listener(self._queue_changed)

    # -- persistence ----------------------------------------------------------

    def load(self) -> None:
        """Restore mode flags, volume and the current entry; always start stopped."""
        with self.lock:
            state = load_player_state(self.db)
            if state.transport != Transport.STOP:
                logger.info(f"Previous run ended in state '{state.transport.value}'")

            self._current_id = None
            if state.current_position is not None and state.current_position < len(self.queue):
                self._current_id = self.queue.at(state.current_position).id
            self._state = state._replace(transport=Transport.STOP)
            self.sink.set_volume(state.volume)
            self._persist()

    def _persist(self) -> None:
        position = None
        if self._current_id is not None:
            position = self.queue.position_of(self._current_id)
            if position is None:
                self._current_id = None
        self._state = self._state._replace(current_position=position)
        save_player_state(self.db, self._state)

    # -- read side ------------------------------------------------------------

    @property
    def state(self) -> PlayerState:
        with self.lock:
            return self._state

    @property
    def transport(self) -> Transport:
        return self.state.transport

    @property
    def generation(self) -> int:
        return self.state.generation

    def current_entry(self) -> Optional[QueueEntry]:
        with self.lock:
            if self._current_id is None or self._current_id not in self.queue:
                return None
            return self.queue.get(self._current_id)

    def status(self) -> PlayerStatus:
        with self.lock:
            state = self._state
            status = PlayerStatus(
                state=state.transport,
                repeat=state.repeat,
                random=state.random,
                single=state.single,
                consume=state.consume,
                volume=state.volume,
                error=self.error,
            )
            current = self.current_entry()
            if current is None:
                return status

            status = status._replace(song=current.position, song_id=current.id)
            following = self._successor(current.id, peek=True)
            if following is not None:
                status = status._replace(
                    next_song=self.queue.position_of(following), next_song_id=following
                )

            if state.transport != Transport.STOP:
                duration = None
                try:
                    duration = self.library.get(current.song_id).duration
                except SongNotFound:
                    pass
                if current.range_end is not None:
                    duration = current.range_end
                status = status._replace(elapsed=self.sink.elapsed(), duration=duration)
            return status

    # -- traversal ------------------------------------------------------------

    def _successor(self, entry_id: Optional[int], peek: bool = False) -> Optional[int]:
        """Entry after `entry_id` in the active order; None past the end without repeat."""
        if not len(self.queue):
            return None

        if self._state.random:
            order = self.queue.random_order(anchor=entry_id)
            if entry_id is None or entry_id not in order:
                return order[0]
            index = order.index(entry_id)
            if index + 1 < len(order):
                return order[index + 1]
            if not self._state.repeat or peek:
                return None
            # A consumed entry is removed once it ends, so it cannot follow itself
            order = [e for e in self.queue.new_random_pass() if not self._consumes(e, entry_id)]
            return order[0] if order else None

        position = self.queue.position_of(entry_id) if entry_id is not None else None
        if position is None:
            return self.queue.at(0).id
        if position + 1 < len(self.queue):
            return self.queue.at(position + 1).id
        if self._state.repeat:
            first = self.queue.at(0).id
            if not self._consumes(first, entry_id):
                return first
        return None

    def _consumes(self, candidate: int, finished: Optional[int]) -> bool:
        return self._state.consume and candidate == finished

    def _predecessor(self, entry_id: int) -> int:
        """Entry before `entry_id`; wraps with repeat, otherwise restarts it."""
        if self._state.random:
            order = self.queue.random_order(anchor=entry_id)
            index = order.index(entry_id)
            if index > 0:
                return order[index - 1]
            return order[-1] if self._state.repeat else entry_id

        position = self.queue.position_of(entry_id)
        if position > 0:
            return self.queue.at(position - 1).id
        if self._state.repeat:
            return self.queue.at(len(self.queue) - 1).id
        return entry_id

    def _first(self) -> Optional[int]:
        if not len(self.queue):
            return None
        if self._state.random:
            return self.queue.random_order()[0]
        return self.queue.at(0).id

    # -- transport ------------------------------------------------------------

    def _start(self, entry_id: int, offset: Optional[float] = None) -> bool:
        """Hand an entry to the sink; on failure stop with `error` set."""
        entry = self.queue.get(entry_id)
        self._token += 1
        token = self._token
        self._current_id = entry_id

        start = offset if offset is not None else (entry.range_start or 0.0)
        try:
            song = self.library.get(entry.song_id)
            path = self.music_directory / song.path
            self.sink.start(path, start, entry.range_end, partial(self._song_finished, token))
        except (SinkError, SongNotFound) as e:
            logger.warning(f"Cannot play entry {entry_id}: {e}")
            self.error = str(e)
            try:
                self.sink.stop()
            except SinkError as stop_error:
                logger.warning(f"Sink stop failed: {stop_error}")
            self._state = self._state._replace(transport=Transport.STOP)
            self._persist()
            self._notify("player")
            return False

        self.error = None
        self._state = self._state._replace(transport=Transport.PLAY)
        self._persist()
        self._notify("player")
        logger.info(f"Playing entry {entry_id} ({song.path})")
        return True

    def _halt(self, current_id: Optional[int]) -> None:
        """Stop the sink and park the current entry at `current_id`."""
        self._token += 1
        if self._state.transport != Transport.STOP:
            self.sink.stop()
        self._current_id = current_id
        self._state = self._state._replace(transport=Transport.STOP)
        self._persist()
        self._notify("player")

    def play(self, position: Optional[int] = None) -> None:
        """Play the entry at `position`, or resume/start from the current entry.

        Raises:
            OutOfRange: if position is not in the queue
        """
        with self.lock:
            if position is not None:
                self._play_explicit(self.queue.at(position).id)
            else:
                self._play_current()

    def play_id(self, entry_id: Optional[int] = None) -> None:
        """Like play(), addressing the entry by id.

        Raises:
            NoSuchEntry: if no entry has that id
        """
        with self.lock:
            if entry_id is not None:
                self._play_explicit(self.queue.get(entry_id).id)
            else:
                self._play_current()

    def _play_explicit(self, entry_id: int) -> None:
        if self._state.random:
            # A jump starts a new pass so every other entry still gets its turn
            self.queue.new_random_pass(anchor=entry_id)
        self._start(entry_id)

    def _play_current(self) -> None:
        transport = self._state.transport
        if transport == Transport.PLAY:
            return
        if transport == Transport.PAUSE:
            self._resume()
            return

        target = self._current_id
        if target is None or target not in self.queue:
            target = self._first()
        if target is not None:
            self._start(target)

    def _resume(self) -> None:
        self.sink.resume()
        self._state = self._state._replace(transport=Transport.PLAY)
        self._persist()
        self._notify("player")

    def pause(self, paused: Optional[bool] = None) -> None:
        """Pause (True), resume (False) or toggle (None); no-op while stopped."""
        with self.lock:
            transport = self._state.transport
            if transport == Transport.PLAY and paused in (True, None):
                self.sink.pause()
                self._state = self._state._replace(transport=Transport.PAUSE)
                self._persist()
                self._notify("player")
            elif transport == Transport.PAUSE and paused in (False, None):
                self._resume()

    def stop(self) -> None:
        with self.lock:
            if self._state.transport == Transport.STOP:
                return
            self._halt(self._current_id)

    def next(self) -> None:
        """Skip to the successor; ignores single mode, honours consume."""
        with self.lock:
            if self._state.transport == Transport.STOP:
                return
            self._advance()

    def previous(self) -> None:
        with self.lock:
            if self._state.transport == Transport.STOP or self._current_id is None:
                return
            if self._current_id not in self.queue:
                return
            self._start(self._predecessor(self._current_id))

    def _advance(self) -> None:
        finished = self._current_id
        target = self._successor(finished)
        if target is None:
            self._halt(None)
        else:
            self._start(target)

        # The successor was chosen from the order that still held the finished entry
        if self._state.consume and finished is not None and finished != target:
            if finished in self.queue:
                self.queue.remove_id(finished)

    def _song_finished(self, token: int) -> None:
        """Sink callback: the song started under `token` reached its end."""
        with self.lock:
            if token != self._token or self._state.transport != Transport.PLAY:
                logger.debug(f"Ignoring stale song-end event {token}")
                return
            try:
                self._natural_end()
            except PersistenceError as e:
                logger.exception("Persistence failure while advancing playback")
                if self.on_fatal is None:
                    raise
                self.on_fatal(e)

    def _natural_end(self) -> None:
        finished = self._current_id
        if finished is None or finished not in self.queue:
            self._halt(None)
            return

        if self._state.single:
            if self._state.repeat and not self._state.consume:
                self._start(finished)
                return
            self._halt(finished)
            if self._state.consume:
                self.queue.remove_id(finished)
            return

        self._advance()

    def seek(self, position: int, seconds: float) -> None:
        """Seek within the entry at `position`, starting it if needed."""
        with self.lock:
            self._seek_entry(self.queue.at(position).id, seconds)

    def seek_id(self, entry_id: int, seconds: float) -> None:
        with self.lock:
            self._seek_entry(self.queue.get(entry_id).id, seconds)

    def seek_cur(self, seconds: float, relative: bool = False) -> None:
        """Seek in the current entry; `relative` offsets from the elapsed time.

        Raises:
            NotPlaying: if there is no current entry
        """
        with self.lock:
            if self._current_id is None or self._current_id not in self.queue:
                raise NotPlaying("Not playing")
            if relative:
                base = self.sink.elapsed() if self._state.transport != Transport.STOP else 0.0
                seconds = max(0.0, base + seconds)
            self._seek_entry(self._current_id, seconds)

    def _seek_entry(self, entry_id: int, seconds: float) -> None:
        if entry_id == self._current_id and self._state.transport != Transport.STOP:
            try:
                self.sink.seek(seconds)
            except SinkError as e:
                logger.warning(f"Seek failed: {e}")
                self.error = str(e)
            self._notify("player")
            return
        self._start(entry_id, offset=seconds)

    # -- options --------------------------------------------------------------

    def _set_option(self, name: str, value: bool) -> None:
        with self.lock:
            self._state = self._state._replace(**{name: value})
            self._persist()
            self._notify("options")

    def set_repeat(self, value: bool) -> None:
        self._set_option("repeat", value)

    def set_random(self, value: bool) -> None:
        with self.lock:
            if value and not self._state.random:
                self.queue.invalidate_random()
            self._set_option("random", value)

    def set_single(self, value: bool) -> None:
        self._set_option("single", value)

    def set_consume(self, value: bool) -> None:
        self._set_option("consume", value)

    def set_volume(self, volume: int) -> None:
        """Set the volume (0..100) and forward it to the sink."""
        with self.lock:
            volume = max(0, min(100, volume))
            try:
                self.sink.set_volume(volume)
            except SinkError as e:
                logger.warning(f"Sink refused volume {volume}: {e}")
            self._state = self._state._replace(volume=volume)
            self._persist()
            self._notify("mixer")

    def change_volume(self, delta: int) -> None:
        with self.lock:
            self.set_volume(self._state.volume + delta)

    def set_generation(self, generation: int) -> None:
        """Record the library generation the queue was last reconciled against."""
        with self.lock:
            self._state = self._state._replace(generation=generation)
            self._persist()

    def clear_error(self) -> None:
        with self.lock:
            self.error = None
            self._notify("player")

    def shuffle(self, start: int = 0, end: Optional[int] = None) -> None:
        """Shuffle part of the queue around the current entry."""
        with self.lock:
            self.queue.shuffle(start, end, keep=self._current_id)

    # -- queue listener -------------------------------------------------------

    def _queue_changed(self, change: QueueChange) -> None:
        with self.lock:
            removed = dict(change.removed)
            if self._current_id is None or self._current_id not in removed:
                self._persist()
                return

            former = removed[self._current_id]
            successor = self._successor_after_removal(change, former)
            logger.debug(f"Current entry {self._current_id} removed, successor {successor}")
            if self._state.transport == Transport.PLAY and successor is not None:
                self._start(successor)
            elif self._state.transport == Transport.PLAY:
                self._halt(None)
            else:
                self._halt(successor)

    def _successor_after_removal(self, change: QueueChange, former: int) -> Optional[int]:
        if not len(self.queue):
            return None

        if self._state.random:
            order = change.prior_random_order
            if self._current_id in order:
                index = order.index(self._current_id)
                for entry_id in order[index + 1 :]:
                    if entry_id in self.queue:
                        return entry_id
                if not self._state.repeat:
                    return None
                return self.queue.new_random_pass()[0]
            return self._first()

        # Entries before the current one that also went away shift it left
        shift = sum(1 for _, pos in change.removed if pos < former)
        position = former - shift
        if position < len(self.queue):
            return self.queue.at(position).id
        if self._state.repeat:
            return self.queue.at(0).id
        return None
