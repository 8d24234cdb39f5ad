"""Library domain - music file scanning and the song store.

This domain handles:
- Song data models
- Metadata extraction from audio files
- Scan epochs and garbage collection of vanished files
- Find/search/list queries over the library
"""

# Models
from .models import TAG_FIELDS, ScanStats, Song

# Metadata extraction
from .metadata import extract_metadata_from_filename, extract_song_metadata, get_tag_value

# Library store and scanning
from .store import LibraryStore, SongNotFound, normalize_uri, song_matches
from .scanner import (
    ScanInProgress,
    UpdateManager,
    is_supported_format,
    iter_music_files,
    scan_library,
)

__all__ = [
    # Models
    "Song",
    "ScanStats",
    "TAG_FIELDS",
    # Metadata
    "get_tag_value",
    "extract_metadata_from_filename",
    "extract_song_metadata",
    # Store
    "LibraryStore",
    "SongNotFound",
    "normalize_uri",
    "song_matches",
    # Scanning
    "ScanInProgress",
    "UpdateManager",
    "is_supported_format",
    "iter_music_files",
    "scan_library",
]
