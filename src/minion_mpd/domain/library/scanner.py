"""
Music directory scanning.

Walks the music directory, re-reads tags only for new or modified files, and
commits results to the library in batches. A scan can be cancelled between
batches; the library then keeps whatever was committed.
"""

import os
import threading
from pathlib import Path
from typing import Callable, Iterator, Optional

from loguru import logger

from minion_mpd.core.config import MusicConfig
from minion_mpd.core.database import PersistenceError

from .metadata import extract_song_metadata
from .models import ScanStats, Song
from .store import LibraryStore, normalize_uri


class ScanInProgress(Exception):
    """Raised when an update is requested while another one runs."""

    pass


def is_supported_format(local_path: Path, supported_formats: list[str]) -> bool:
    """Check if file format is supported."""
    return local_path.suffix.lower() in supported_formats


def iter_music_files(
    music_dir: Path, music_config: MusicConfig, prefix: str = ""
) -> Iterator[Path]:
    """Yield supported audio files at or below `prefix`, sorted."""
    root = music_dir / prefix if prefix else music_dir
    if root.is_file():
        if is_supported_format(root, music_config.supported_formats):
            yield root
        return
    if not root.is_dir():
        logger.warning(f"Update path does not exist: {root}")
        return

    # Smart glob: only traverse music files
    files: list[Path] = []
    for ext in music_config.supported_formats:
        if music_config.scan_recursive:
            files.extend(root.rglob(f"*{ext}"))
        else:
            files.extend(root.glob(f"*{ext}"))
    yield from sorted(set(files))


def scan_library(
    store: LibraryStore,
    music_config: MusicConfig,
    prefix: str = "",
    rescan: bool = False,
    cancel_event: Optional[threading.Event] = None,
    progress_callback: Optional[Callable[[int], None]] = None,
) -> ScanStats:
    """Scan the music directory (or part of it) into the library.

    Unchanged files (same mtime) keep their tags and only get the new
    generation stamped; `rescan` forces tags to be re-read for every file.

    Args:
        store: Library to write into
        music_config: Music directory and format settings
        prefix: Relative directory or file to restrict the scan to
        rescan: Re-read tags even for unchanged files
        cancel_event: Set to stop between batches
        progress_callback: Optional callback(files_seen) after each batch

    Returns:
        ScanStats with counts; `cancelled` is True when stopped early
    """
    music_dir = Path(music_config.music_directory).expanduser()
    prefix = normalize_uri(prefix)
    batch_size = max(1, music_config.scan_batch_size)

    generation = store.begin_epoch()
    known_files = store.known_files(prefix)
    logger.info(f"Scanning {music_dir / prefix} (generation {generation})")
    logger.debug(f"Database has {len(known_files)} known files below '{prefix}'")

    added = updated = unchanged = seen = 0
    batch: list[Song] = []
    confirmed: list[int] = []

    def flush() -> bool:
        nonlocal batch, confirmed
        if batch or confirmed:
            store.commit_batch(generation, batch, confirmed)
            batch, confirmed = [], []
        if progress_callback:
            progress_callback(seen)
        return bool(cancel_event and cancel_event.is_set())

    for file_path in iter_music_files(music_dir, music_config, prefix):
        relative_path = file_path.relative_to(music_dir).as_posix()
        try:
            mtime = os.stat(file_path).st_mtime
        except OSError as e:
            # Vanished between listing and stat; the epoch close collects it
            logger.warning(f"Cannot stat {relative_path}: {e}")
            continue

        seen += 1
        known = known_files.get(relative_path)
        if known is not None and not rescan and known[1] == mtime:
            confirmed.append(known[0])
            unchanged += 1
        else:
            batch.append(extract_song_metadata(file_path, relative_path, mtime))
            if known is None:
                added += 1
            else:
                updated += 1

        if len(batch) + len(confirmed) >= batch_size:
            if flush():
                logger.info(f"Scan of generation {generation} cancelled after {seen} files")
                return ScanStats(generation, added, updated, unchanged, cancelled=True)

    flush()
    deleted, tombstoned = store.finish_epoch(generation, prefix)

    stats = ScanStats(generation, added, updated, unchanged, deleted, tombstoned)
    logger.info(
        f"Scan stats - added: {added}, updated: {updated}, unchanged: {unchanged}, "
        f"deleted: {deleted}, tombstoned: {tombstoned}"
    )
    return stats


class UpdateManager:
    """Runs library scans on a background thread, one at a time.

    Each accepted request gets an increasing job id, reported by `status`
    as `updating_db` while the scan runs.
    """

    def __init__(
        self,
        store: LibraryStore,
        music_config: MusicConfig,
        notify: Callable[[str], None],
        on_finished: Optional[Callable[[ScanStats], None]] = None,
        on_fatal: Optional[Callable[[Exception], None]] = None,
    ):
        self.store = store
        self.music_config = music_config
        self._notify = notify
        self.on_finished = on_finished
        self.on_fatal = on_fatal
        self._lock = threading.Lock()
        self._last_job_id = 0
        self._running_job: Optional[int] = None
        self._thread: Optional[threading.Thread] = None
        self._cancel = threading.Event()
        self.last_stats: Optional[ScanStats] = None

    @property
    def current_job(self) -> Optional[int]:
        with self._lock:
            return self._running_job

    def start(self, uri: str = "", rescan: bool = False) -> int:
        """Start a background scan and return its job id.

        Raises:
            ScanInProgress: if a scan is already running
        """
        with self._lock:
            if self._running_job is not None:
                raise ScanInProgress(f"Update job {self._running_job} is still running")
            self._last_job_id += 1
            job_id = self._running_job = self._last_job_id
            self._cancel.clear()
            self._thread = threading.Thread(
                target=self._run,
                args=(job_id, uri, rescan),
                name=f"update-{job_id}",
                daemon=True,
            )
            self._thread.start()

        logger.info(f"Update job {job_id} started for '{uri or '/'}' (rescan={rescan})")
        return job_id

    def _run(self, job_id: int, uri: str, rescan: bool) -> None:
        self._notify("update")
        try:
            stats = scan_library(
                self.store, self.music_config, uri, rescan, cancel_event=self._cancel
            )
            self.last_stats = stats
            if stats.modified:
                if self.on_finished:
                    self.on_finished(stats)
                self._notify("database")
        except PersistenceError as e:
            logger.critical(f"Update job {job_id} hit a persistence failure: {e}")
            if self.on_fatal:
                self.on_fatal(e)
        except Exception:
            logger.exception(f"Update job {job_id} failed")
        finally:
            with self._lock:
                self._running_job = None
            self._notify("update")
            logger.info(f"Update job {job_id} finished")

    def cancel(self) -> None:
        """Ask a running scan to stop at its next batch boundary."""
        self._cancel.set()

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
