"""
MPV audio sink with JSON IPC for minion-mpd

Runs one idle `mpv` process and loads songs into it. A monitor thread polls
`eof-reached` and reports the natural end of each song back to the machine.
"""

import json
import os
import socket
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, NamedTuple, Optional

from loguru import logger

from minion_mpd.core.config import PlayerConfig

from .sink import SinkError

# Poll interval of the end-of-file monitor (seconds)
MONITOR_INTERVAL = 0.25

# Minimum playback time before allowing "song finished" (seconds)
MIN_PLAYBACK_TIME = 0.5


class MpvProcess(NamedTuple):
    """Handle on a running mpv process."""

    socket_path: str
    process: subprocess.Popen


def check_mpv_available() -> bool:
    """Check if MPV is available on the system."""
    try:
        result = subprocess.run(
            ["mpv", "--version"], capture_output=True, text=True, timeout=5
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False


def start_mpv(player_config: PlayerConfig) -> Optional[MpvProcess]:
    """Start MPV with JSON IPC and return a handle on it."""
    # Create socket path
    if player_config.mpv_socket_path:
        socket_path = player_config.mpv_socket_path
    else:
        temp_dir = Path(tempfile.gettempdir())
        socket_path = str(temp_dir / f"minion-mpd-mpv-{os.getpid()}")

    logger.info(f"Starting MPV player with socket: {socket_path}")

    try:
        # Remove existing socket if it exists
        if os.path.exists(socket_path):
            logger.debug(f"Removing existing socket: {socket_path}")
            os.unlink(socket_path)

        cmd = [
            "mpv",
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            f"--input-ipc-server={socket_path}",
            f"--volume={player_config.volume}",
            "--keep-open=yes",
            "--load-scripts=no",
        ]

        process = subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
        )

        # Wait for socket to be created
        timeout = 5.0
        start_time = time.time()
        while not os.path.exists(socket_path):
            if time.time() - start_time > timeout:
                logger.error(f"MPV socket creation timeout after {timeout}s")
                process.kill()
                return None
            time.sleep(0.1)

        # Test connection
        if send_mpv_command(socket_path, {"command": ["get_property", "idle-active"]}):
            logger.info("MPV started successfully")
            return MpvProcess(socket_path=socket_path, process=process)

        logger.error("MPV socket connection test failed")
        process.kill()
        return None

    except (subprocess.SubprocessError, OSError) as e:
        logger.error(f"Failed to start MPV: {e}")
        return None


def stop_mpv(mpv: MpvProcess) -> None:
    """Stop MPV process and cleanup."""
    try:
        mpv.process.kill()
        mpv.process.wait(timeout=2.0)
    except (OSError, subprocess.TimeoutExpired):
        pass  # Process already terminated or couldn't be killed

    if os.path.exists(mpv.socket_path):
        try:
            os.unlink(mpv.socket_path)
        except OSError:
            pass


def is_mpv_running(mpv: Optional[MpvProcess]) -> bool:
    """Check if MPV process is still running."""
    if mpv is None or mpv.process.poll() is not None:
        return False
    return os.path.exists(mpv.socket_path)


def _request(socket_path: str, command: dict[str, Any]) -> Optional[dict]:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(2.0)
    try:
        sock.connect(socket_path)
        sock.sendall((json.dumps(command) + "\n").encode("utf-8"))
        response = sock.recv(4096).decode("utf-8").strip()
    finally:
        sock.close()

    # mpv may interleave event lines before the reply; the reply carries "error"
    for line in response.splitlines():
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            continue
        if "error" in data:
            return data
    return None


def send_mpv_command(socket_path: Optional[str], command: dict[str, Any]) -> bool:
    """Send JSON IPC command to MPV."""
    if not socket_path or not os.path.exists(socket_path):
        return False

    try:
        response = _request(socket_path, command)
    except OSError:
        return False
    return response is not None and response.get("error") == "success"


def get_mpv_property(socket_path: Optional[str], property_name: str) -> Any:
    """Get a property value from MPV."""
    if not socket_path or not os.path.exists(socket_path):
        return None

    try:
        response = _request(socket_path, {"command": ["get_property", property_name]})
    except OSError:
        return None
    if response and response.get("error") == "success":
        return response.get("data")
    return None


class MpvSink:
    """Audio sink backed by an mpv subprocess."""

    def __init__(self, player_config: PlayerConfig):
        self.player_config = player_config
        self._mpv: Optional[MpvProcess] = None
        self._lock = threading.Lock()
        self._on_end: Optional[Callable[[], None]] = None
        self._started_at: Optional[float] = None
        self._stop_monitor = threading.Event()
        self._monitor: Optional[threading.Thread] = None

    def _ensure_running(self) -> str:
        if not is_mpv_running(self._mpv):
            if self._mpv is not None:
                logger.warning("MPV process died, restarting")
                stop_mpv(self._mpv)
            self._mpv = start_mpv(self.player_config)
            if self._mpv is None:
                raise SinkError("Cannot start mpv")
        if self._monitor is None or not self._monitor.is_alive():
            self._stop_monitor.clear()
            self._monitor = threading.Thread(
                target=self._watch_end, name="mpv-monitor", daemon=True
            )
            self._monitor.start()
        return self._mpv.socket_path

    def _command(self, *args: Any) -> None:
        socket_path = self._ensure_running()
        if not send_mpv_command(socket_path, {"command": list(args)}):
            raise SinkError(f"mpv rejected command {args[0]}")

    def start(self, path, start, end, on_end) -> None:
        path = Path(path)
        if not path.is_file():
            raise SinkError(f"No such file: {path}")

        with self._lock:
            self._on_end = None
        # Window options apply to the next loadfile
        self._command("set_property", "start", f"{start:.3f}" if start else "none")
        self._command("set_property", "end", f"{end:.3f}" if end is not None else "none")
        self._command("loadfile", str(path), "replace")
        self._command("set_property", "pause", False)
        with self._lock:
            self._on_end = on_end
            self._started_at = time.monotonic()
        logger.debug(f"MPV playing {path} from {start:.3f}s")

    def pause(self) -> None:
        self._command("set_property", "pause", True)

    def resume(self) -> None:
        self._command("set_property", "pause", False)

    def stop(self) -> None:
        with self._lock:
            self._on_end = None
            self._started_at = None
        if is_mpv_running(self._mpv):
            self._command("stop")

    def seek(self, seconds: float) -> None:
        self._command("seek", seconds, "absolute")

    def elapsed(self) -> float:
        if not is_mpv_running(self._mpv):
            return 0.0
        position = get_mpv_property(self._mpv.socket_path, "time-pos")
        return float(position) if position is not None else 0.0

    def set_volume(self, volume: int) -> None:
        volume = max(0, min(100, volume))  # Clamp to 0-100
        self.player_config.volume = volume
        if is_mpv_running(self._mpv):
            self._command("set_property", "volume", volume)

    def close(self) -> None:
        self._stop_monitor.set()
        if self._mpv is not None:
            stop_mpv(self._mpv)
            self._mpv = None

    def _watch_end(self) -> None:
        while not self._stop_monitor.wait(MONITOR_INTERVAL):
            with self._lock:
                on_end = self._on_end
                started_at = self._started_at
            if on_end is None or started_at is None:
                continue
            if time.monotonic() - started_at < MIN_PLAYBACK_TIME:
                continue

            mpv = self._mpv
            if mpv is None:
                continue
            if get_mpv_property(mpv.socket_path, "eof-reached") is not True:
                continue

            with self._lock:
                # A start() or stop() since the poll owns the callback now
                if self._on_end is not on_end:
                    continue
                self._on_end = None
            logger.debug("MPV reached end of file")
            on_end()
