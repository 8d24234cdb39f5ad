"""
minion-mpd - server startup and shutdown
"""

import signal
import threading

from loguru import logger

from minion_mpd.context import ServerContext
from minion_mpd.core import config
from minion_mpd.core.console import safe_print
from minion_mpd.core.database import PersistenceError
from minion_mpd.core.output import setup_logging_from_config
from minion_mpd.domain import playback
from minion_mpd.domain.library import ScanStats, scan_library
from minion_mpd.server import MPDServer


def create_sink(player_config: config.PlayerConfig) -> playback.AudioSink:
    """Build the audio sink named by the [player] section.

    Raises:
        RuntimeError: if mpv output is configured but mpv is not installed
    """
    if player_config.output == "null":
        return playback.NullSink()
    if not playback.check_mpv_available():
        raise RuntimeError("mpv is not installed. Install it or set [player] output = \"null\"")
    return playback.MpvSink(player_config)


def run_server(cfg: config.Config) -> int:
    """Run the protocol server until interrupted.

    Returns:
        Exit code (0 on a clean shutdown, 1 on startup or persistence failure)
    """
    setup_logging_from_config(cfg.logging)

    try:
        sink = create_sink(cfg.player)
        ctx = ServerContext.create(cfg, sink)
    except RuntimeError as e:
        safe_print(f"❌ {e}", style="red")
        return 1
    except PersistenceError as e:
        logger.exception("Could not open the database")
        safe_print(f"❌ Database error: {e}", style="red")
        return 1

    server = MPDServer(ctx, host=cfg.server.bind_address, port=cfg.server.port)

    def handle_signal(signum, frame) -> None:
        logger.info(f"Received signal {signum}, shutting down")
        # stop() joins the accept thread, so keep it off the signal frame
        threading.Thread(target=server.stop, name="signal-stop", daemon=True).start()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        server.start()
    except OSError as e:
        logger.error(f"Cannot listen on {cfg.server.bind_address}:{cfg.server.port}: {e}")
        safe_print(f"❌ Cannot listen on port {cfg.server.port}: {e}", style="red")
        ctx.close()
        return 1

    host, port = server.address
    safe_print(f"🎵 minion-mpd listening on {host}:{port}", style="green")

    if cfg.music.scan_on_startup:
        ctx.updates.start()

    try:
        server.serve_forever()
    finally:
        ctx.close()

    if server.fatal_error is not None:
        safe_print(f"❌ Stopped after a database failure: {server.fatal_error}", style="red")
        return 1
    safe_print("Goodbye!", style="green")
    return 0


def run_scan(cfg: config.Config, rescan: bool = False) -> ScanStats:
    """Scan the library once in the foreground and reconcile the queue."""
    setup_logging_from_config(cfg.logging)
    ctx = ServerContext.create(cfg, playback.NullSink())
    try:
        stats = scan_library(ctx.library, cfg.music, rescan=rescan)
        if stats.modified:
            ctx.reconcile_library()
        return stats
    finally:
        ctx.close()
