"""
Queue command handlers for minion-mpd.

Handles: add, addid, clear, delete, deleteid, move, moveid, playlistid,
playlistinfo, playlistfind, playlistsearch, plchanges, plchangesposid, prio,
prioid, rangeid, shuffle, swap, swapid
"""

from typing import Iterable, Optional

from loguru import logger

from minion_mpd.context import ClientState, ServerContext
from minion_mpd.domain.library import song_matches
from minion_mpd.domain.queue import QueueEntry
from minion_mpd.protocol.parser import (
    parse_filters,
    parse_int,
    parse_priority,
    parse_range,
    parse_time_range,
    parse_uint,
)
from minion_mpd.protocol.response import Pairs, song_pairs

from .registry import command


def entry_blocks(
    ctx: ServerContext, client: ClientState, entries: Iterable[QueueEntry]
) -> Pairs:
    """Song blocks (with Pos/Id) for queue entries."""
    entries = list(entries)
    songs = ctx.library.get_many(entry.song_id for entry in entries)
    pairs: Pairs = []
    for entry in entries:
        song = songs.get(entry.song_id)
        if song is None:
            logger.warning(f"Queue entry {entry.id} refers to missing song {entry.song_id}")
            continue
        pairs.extend(song_pairs(song, entry, client.tag_types))
    return pairs


def _optional_position(args: list[str], index: int) -> Optional[int]:
    return parse_uint(args[index]) if len(args) > index else None


@command("add", min_args=1, max_args=2, mutating=True)
def handle_add(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    """Add a song, or every song below a directory, to the queue."""
    songs = ctx.library.resolve_uri(args[0])
    ctx.queue.add_many([song.id for song in songs], _optional_position(args, 1))
    return []


@command("addid", min_args=1, max_args=2, mutating=True)
def handle_addid(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    song = ctx.library.get_by_path(args[0])
    entry_id = ctx.queue.add(song.id, _optional_position(args, 1))
    return [("Id", str(entry_id))]


@command("clear", mutating=True)
def handle_clear(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.queue.clear()
    return []


@command("delete", min_args=1, max_args=1, mutating=True)
def handle_delete(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    start, end = parse_range(args[0])
    ctx.queue.remove_range(start, end)
    return []


@command("deleteid", min_args=1, max_args=1, mutating=True)
def handle_deleteid(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.queue.remove_id(parse_uint(args[0]))
    return []


@command("move", min_args=2, max_args=2, mutating=True)
def handle_move(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    start, end = parse_range(args[0])
    ctx.queue.move(start, end, parse_uint(args[1]))
    return []


@command("moveid", min_args=2, max_args=2, mutating=True)
def handle_moveid(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.queue.move_id(parse_uint(args[0]), parse_uint(args[1]))
    return []


@command("swap", min_args=2, max_args=2, mutating=True)
def handle_swap(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.queue.swap(parse_uint(args[0]), parse_uint(args[1]))
    return []


@command("swapid", min_args=2, max_args=2, mutating=True)
def handle_swapid(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.queue.swap_ids(parse_uint(args[0]), parse_uint(args[1]))
    return []


@command("shuffle", max_args=1, mutating=True)
def handle_shuffle(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    start, end = parse_range(args[0]) if args else (0, None)
    ctx.machine.shuffle(start, end)
    return []


@command("prio", min_args=2, max_args=None, mutating=True)
def handle_prio(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    priority = parse_priority(args[0])
    ranges = [parse_range(arg) for arg in args[1:]]
    entry_ids: list[int] = []
    for start, end in ranges:
        entry_ids.extend(ctx.queue.ids_in_range(start, end))
    ctx.queue.set_priority(entry_ids, priority)
    return []


@command("prioid", min_args=2, max_args=None, mutating=True)
def handle_prioid(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    priority = parse_priority(args[0])
    ctx.queue.set_priority([parse_uint(arg) for arg in args[1:]], priority)
    return []


@command("rangeid", min_args=2, max_args=2, mutating=True)
def handle_rangeid(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    start, end = parse_time_range(args[1])
    ctx.queue.set_range(parse_uint(args[0]), start, end)
    return []


@command("playlistinfo", max_args=1)
def handle_playlistinfo(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    start, end = parse_range(args[0]) if args else (0, None)
    return entry_blocks(ctx, client, ctx.queue.entries(start, end))


@command("playlistid", max_args=1)
def handle_playlistid(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    if args:
        return entry_blocks(ctx, client, [ctx.queue.get(parse_uint(args[0]))])
    return entry_blocks(ctx, client, ctx.queue.entries())


def _matching_entries(ctx: ServerContext, args: list[str], exact: bool) -> list[QueueEntry]:
    filters = parse_filters(args)
    entries = list(ctx.queue.entries())
    songs = ctx.library.get_many(entry.song_id for entry in entries)
    return [
        entry
        for entry in entries
        if entry.song_id in songs and song_matches(songs[entry.song_id], filters, exact)
    ]


@command("playlistfind", min_args=2, max_args=None)
def handle_playlistfind(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    return entry_blocks(ctx, client, _matching_entries(ctx, args, exact=True))


@command("playlistsearch", min_args=2, max_args=None)
def handle_playlistsearch(
    ctx: ServerContext, client: ClientState, args: list[str]
) -> Pairs:
    return entry_blocks(ctx, client, _matching_entries(ctx, args, exact=False))


def _changes(ctx: ServerContext, args: list[str]) -> list[QueueEntry]:
    version = parse_int(args[0])
    changed = ctx.queue.changes_since(version)
    if len(args) > 1:
        start, end = parse_range(args[1])
        changed = [
            entry
            for entry in changed
            if entry.position >= start and (end is None or entry.position < end)
        ]
    return changed


@command("plchanges", min_args=1, max_args=2)
def handle_plchanges(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    return entry_blocks(ctx, client, _changes(ctx, args))


@command("plchangesposid", min_args=1, max_args=2)
def handle_plchangesposid(
    ctx: ServerContext, client: ClientState, args: list[str]
) -> Pairs:
    pairs: Pairs = []
    for entry in _changes(ctx, args):
        pairs.append(("cpos", str(entry.position)))
        pairs.append(("Id", str(entry.id)))
    return pairs
