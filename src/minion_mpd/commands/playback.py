"""
Playback command handlers for minion-mpd.

Handles: play, playid, pause, stop, next, previous, seek, seekid, seekcur,
and the options consume, random, repeat, single, setvol, getvol, volume
"""

from typing import Optional

from minion_mpd.context import ClientState, ServerContext
from minion_mpd.protocol.errors import ArgError
from minion_mpd.protocol.parser import (
    parse_bool,
    parse_float,
    parse_int,
    parse_seek_time,
    parse_uint,
    parse_volume,
)
from minion_mpd.protocol.response import Pairs

from .registry import command


def _optional_target(args: list[str]) -> Optional[int]:
    # -1 means "whatever is current", same as no argument
    if not args:
        return None
    value = parse_int(args[0])
    if value == -1:
        return None
    if value < 0:
        raise ArgError(f"Number is negative: {args[0]}")
    return value


@command("play", max_args=1, mutating=True)
def handle_play(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.play(_optional_target(args))
    return []


@command("playid", max_args=1, mutating=True)
def handle_playid(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.play_id(_optional_target(args))
    return []


@command("pause", max_args=1, mutating=True)
def handle_pause(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.pause(parse_bool(args[0]) if args else None)
    return []


@command("stop", mutating=True)
def handle_stop(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.stop()
    return []


@command("next", mutating=True)
def handle_next(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.next()
    return []


@command("previous", mutating=True)
def handle_previous(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.previous()
    return []


def _seconds(value: str) -> float:
    seconds = parse_float(value)
    if seconds < 0:
        raise ArgError(f"Negative seek time: {value}")
    return seconds


@command("seek", min_args=2, max_args=2, mutating=True)
def handle_seek(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.seek(parse_uint(args[0]), _seconds(args[1]))
    return []


@command("seekid", min_args=2, max_args=2, mutating=True)
def handle_seekid(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.seek_id(parse_uint(args[0]), _seconds(args[1]))
    return []


@command("seekcur", min_args=1, max_args=1, mutating=True)
def handle_seekcur(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    seconds, relative = parse_seek_time(args[0])
    ctx.machine.seek_cur(seconds, relative=relative)
    return []


@command("repeat", min_args=1, max_args=1, mutating=True)
def handle_repeat(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.set_repeat(parse_bool(args[0]))
    return []


@command("random", min_args=1, max_args=1, mutating=True)
def handle_random(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.set_random(parse_bool(args[0]))
    return []


@command("single", min_args=1, max_args=1, mutating=True)
def handle_single(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.set_single(parse_bool(args[0]))
    return []


@command("consume", min_args=1, max_args=1, mutating=True)
def handle_consume(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.set_consume(parse_bool(args[0]))
    return []


@command("setvol", min_args=1, max_args=1, mutating=True)
def handle_setvol(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    ctx.machine.set_volume(parse_volume(args[0]))
    return []


@command("volume", min_args=1, max_args=1, mutating=True)
def handle_volume(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    delta = parse_int(args[0])
    if not -100 <= delta <= 100:
        raise ArgError("Invalid volume value")
    ctx.machine.change_volume(delta)
    return []


@command("getvol")
def handle_getvol(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    return [("volume", str(ctx.machine.state.volume))]
