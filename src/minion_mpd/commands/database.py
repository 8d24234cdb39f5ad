"""
Database command handlers for minion-mpd.

Handles: find, findadd, search, searchadd, list, listall, lsinfo, count,
update, rescan
"""

from minion_mpd.context import ClientState, ServerContext
from minion_mpd.domain.library import TAG_FIELDS, SongNotFound
from minion_mpd.protocol.errors import ArgError
from minion_mpd.protocol.parser import parse_filters
from minion_mpd.protocol.response import Pairs, song_pairs

from .registry import command

# Lower-case tag name -> name used in responses
CANONICAL_TAGS = {name.lower(): name for name in TAG_FIELDS}


@command("find", min_args=2, max_args=None)
def handle_find(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    pairs: Pairs = []
    for song in ctx.library.find(parse_filters(args), exact=True):
        pairs.extend(song_pairs(song, tag_types=client.tag_types))
    return pairs


@command("search", min_args=2, max_args=None)
def handle_search(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    pairs: Pairs = []
    for song in ctx.library.find(parse_filters(args), exact=False):
        pairs.extend(song_pairs(song, tag_types=client.tag_types))
    return pairs


@command("findadd", min_args=2, max_args=None, mutating=True)
def handle_findadd(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    songs = ctx.library.find(parse_filters(args), exact=True)
    ctx.queue.add_many([song.id for song in songs])
    return []


@command("searchadd", min_args=2, max_args=None, mutating=True)
def handle_searchadd(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    songs = ctx.library.find(parse_filters(args), exact=False)
    ctx.queue.add_many([song.id for song in songs])
    return []


@command("count", min_args=2, max_args=None)
def handle_count(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    songs = ctx.library.find(parse_filters(args), exact=True)
    playtime = sum(song.duration or 0.0 for song in songs)
    return [("songs", str(len(songs))), ("playtime", str(int(playtime)))]


@command("list", min_args=1, max_args=None)
def handle_list(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    """Distinct values of one tag, optionally filtered.

    `list album ARTIST` (a single value after `album`) is the old shorthand
    for `list album artist ARTIST`.
    """
    tag = args[0].lower()
    if tag != "file" and tag not in CANONICAL_TAGS:
        raise ArgError(f"Unknown tag type: {args[0]}")

    rest = args[1:]
    if tag == "album" and len(rest) == 1:
        rest = ["artist", rest[0]]
    filters = parse_filters(rest) if rest else []

    key = "file" if tag == "file" else CANONICAL_TAGS[tag]
    return [(key, value) for value in ctx.library.list_tag(tag, filters)]


@command("listall", max_args=1)
def handle_listall(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    return ctx.library.list_all(args[0] if args else "")


@command("lsinfo", max_args=1)
def handle_lsinfo(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    uri = args[0] if args else ""
    if uri.strip("/"):
        try:
            song = ctx.library.get_by_path(uri)
            return song_pairs(song, tag_types=client.tag_types)
        except SongNotFound:
            pass

    directories, songs = ctx.library.list_directory(uri)
    pairs: Pairs = [("directory", directory) for directory in directories]
    for song in songs:
        pairs.extend(song_pairs(song, tag_types=client.tag_types))
    return pairs


@command("update", max_args=1)
def handle_update(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    job_id = ctx.updates.start(args[0] if args else "")
    return [("updating_db", str(job_id))]


@command("rescan", max_args=1)
def handle_rescan(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    job_id = ctx.updates.start(args[0] if args else "", rescan=True)
    return [("updating_db", str(job_id))]
