"""Playback domain - transport state machine and audio sinks.

This domain handles:
- Player state persistence (mode flags, volume, current position)
- The play/pause/stop/next/previous state machine and its mode rules
- Audio sinks: mpv over JSON IPC, and a null sink that only keeps time
"""

# State machine
from .machine import NotPlaying, PlaybackMachine, PlayerStatus

# Sinks
from .sink import AudioSink, NullSink, SinkError
from .player import (
    MpvProcess,
    MpvSink,
    check_mpv_available,
    get_mpv_property,
    is_mpv_running,
    send_mpv_command,
    start_mpv,
    stop_mpv,
)

# State persistence
from .state import PlayerState, Transport, load_player_state, save_player_state

__all__ = [
    # Machine
    "NotPlaying",
    "PlaybackMachine",
    "PlayerStatus",
    # Sinks
    "AudioSink",
    "NullSink",
    "SinkError",
    "MpvProcess",
    "MpvSink",
    "check_mpv_available",
    "get_mpv_property",
    "is_mpv_running",
    "send_mpv_command",
    "start_mpv",
    "stop_mpv",
    # State
    "PlayerState",
    "Transport",
    "load_player_state",
    "save_player_state",
]
