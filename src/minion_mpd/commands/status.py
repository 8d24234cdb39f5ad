"""
Status command handlers for minion-mpd.

Handles: clearerror, currentsong, idle, noidle, status, stats
"""

import time

from minion_mpd.context import ClientState, ServerContext
from minion_mpd.protocol.response import Pairs, bool_flag, format_seconds

from .queue import entry_blocks
from .registry import command


@command("clearerror", mutating=True)
def handle_clearerror(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.clear_error()
    return []


@command("currentsong")
def handle_currentsong(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    entry = ctx.machine.current_entry()
    if entry is None:
        return []
    return entry_blocks(ctx, client, [entry])


@command("status")
def handle_status(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    """Report transport, modes, queue version and the current/next entries."""
    with ctx.lock:
        status = ctx.machine.status()
        queue_version = ctx.queue.version
        queue_length = len(ctx.queue)

    pairs: Pairs = [
        ("volume", str(status.volume)),
        ("repeat", bool_flag(status.repeat)),
        ("random", bool_flag(status.random)),
        ("single", bool_flag(status.single)),
        ("consume", bool_flag(status.consume)),
        ("playlist", str(queue_version)),
        ("playlistlength", str(queue_length)),
        ("state", status.state.value),
    ]
    if status.song is not None:
        pairs.append(("song", str(status.song)))
        pairs.append(("songid", str(status.song_id)))
    if status.next_song is not None:
        pairs.append(("nextsong", str(status.next_song)))
        pairs.append(("nextsongid", str(status.next_song_id)))
    if status.elapsed is not None:
        duration = status.duration or 0.0
        pairs.append(("time", f"{int(status.elapsed)}:{int(round(duration))}"))
        pairs.append(("elapsed", format_seconds(status.elapsed)))
        if status.duration is not None:
            pairs.append(("duration", format_seconds(status.duration)))

    job = ctx.updates.current_job
    if job is not None:
        pairs.append(("updating_db", str(job)))
    if status.error:
        pairs.append(("error", status.error))
    return pairs


@command("stats")
def handle_stats(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    stats = ctx.library.stats()
    return [
        ("artists", str(stats["artists"])),
        ("albums", str(stats["albums"])),
        ("songs", str(stats["songs"])),
        ("uptime", str(int(time.time() - ctx.started_at))),
        ("db_playtime", str(stats["db_playtime"])),
        ("db_update", str(stats["db_update"])),
    ]


# idle/noidle suspend the connection itself; the server loop runs them and
# these entries only make them visible to `commands` and to argument checks
@command("idle", max_args=None, list_allowed=False)
def handle_idle(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    return []


@command("noidle", list_allowed=False)
def handle_noidle(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    return []
