"""minion-mpd - a music server speaking the MPD protocol."""

__version__ = "0.1.0"
