"""
Command routing for minion-mpd.

Routes one request line (or a whole command list) to the handler table and
serializes the reply. This is the only place where domain exceptions are
turned into ACK responses.
"""

from typing import Optional

from loguru import logger

from minion_mpd.commands import COMMANDS
from minion_mpd.context import ClientState, ServerContext
from minion_mpd.domain.library import ScanInProgress, SongNotFound
from minion_mpd.domain.playback import NotPlaying, SinkError
from minion_mpd.domain.queue import (
    InvalidSong,
    NoSuchEntry,
    OutOfRange,
    QueueError,
    QueueFull,
)
from minion_mpd.protocol.errors import (
    Ack,
    ArgError,
    ArgListError,
    CommandError,
    NotListError,
    PermissionDenied,
    UnknownCommandError,
    format_ack,
)
from minion_mpd.protocol.parser import tokenize
from minion_mpd.protocol.response import Pairs, render

LIST_BEGIN = ("command_list_begin", "command_list_ok_begin")
LIST_END = "command_list_end"

# Exceptions the stores and the machine raise for bad requests
DOMAIN_ERRORS = (QueueError, SongNotFound, ScanInProgress, NotPlaying, SinkError, ValueError)


def to_command_error(error: Exception) -> CommandError:
    """Map a domain exception onto its ACK code."""
    if isinstance(error, OutOfRange):
        return ArgError(f"Bad song index: {error}")
    if isinstance(error, NoSuchEntry):
        return CommandError(f"No such song: {error}", Ack.NO_EXIST)
    if isinstance(error, (InvalidSong, SongNotFound)):
        return CommandError(str(error), Ack.NO_EXIST)
    if isinstance(error, QueueFull):
        return CommandError("Playlist is too large", Ack.PLAYLIST_MAX)
    if isinstance(error, ScanInProgress):
        return CommandError("already updating", Ack.UPDATE_ALREADY)
    if isinstance(error, NotPlaying):
        return CommandError("Not playing", Ack.PLAYER_SYNC)
    if isinstance(error, SinkError):
        return CommandError(f"problems with the audio output: {error}", Ack.SYSTEM)
    if isinstance(error, QueueError):
        return CommandError(str(error), Ack.SYSTEM)
    return ArgError(str(error))


def first_word(line: str) -> str:
    parts = line.split(None, 1)
    return parts[0] if parts else ""


def run_command(
    ctx: ServerContext, client: ClientState, tokens: list[str], in_list: bool = False
) -> Pairs:
    """Validate and execute one tokenized command.

    Raises:
        CommandError: for anything reported to the client as an ACK
        PersistenceError: when the database fails (fatal)
    """
    if not tokens:
        raise UnknownCommandError("No command given")

    verb, args = tokens[0], tokens[1:]
    if verb in LIST_BEGIN:
        raise NotListError("Nested command lists are not allowed" if in_list else "Bad list")
    if verb == LIST_END:
        raise NotListError("not in command list mode")

    cmd = COMMANDS.get(verb)
    if cmd is None:
        raise UnknownCommandError(f'unknown command "{verb}"')
    if in_list and not cmd.list_allowed:
        raise ArgError(f"{verb} not allowed in command list")
    if not client.authenticated and not cmd.public:
        raise PermissionDenied(f'you don\'t have permission for "{verb}"')
    if len(args) < cmd.min_args or (cmd.max_args is not None and len(args) > cmd.max_args):
        raise ArgListError(f'wrong number of arguments for "{verb}"')

    logger.debug(f"Command: {verb} {args}")
    try:
        if cmd.mutating:
            with ctx.lock:
                return cmd.handler(ctx, client, args)
        return cmd.handler(ctx, client, args)
    except DOMAIN_ERRORS as e:
        raise to_command_error(e) from e


def _ack(error: CommandError, index: int, verb: str) -> str:
    # An unknown verb is not echoed back in the braces
    if isinstance(error, UnknownCommandError):
        verb = ""
    line = format_ack(error.code, index, verb, error.message)
    logger.warning(line)
    return line + "\n"


def execute(ctx: ServerContext, client: ClientState, line: str) -> str:
    """Run a single request line and return the complete reply text."""
    tokens: Optional[list[str]] = None
    try:
        tokens = tokenize(line)
        pairs = run_command(ctx, client, tokens)
    except CommandError as e:
        verb = tokens[0] if tokens else first_word(line)
        return _ack(e, 0, verb)
    return render(pairs) + "OK\n"


def execute_list(
    ctx: ServerContext, client: ClientState, lines: list[str], ok_mode: bool = False
) -> str:
    """Run a command list atomically with respect to other clients.

    Execution stops at the first failing command. In plain mode the output of
    the commands before it is kept, followed by the ACK carrying the failing
    index; in ok mode that earlier output is dropped and only the ACK is sent.
    """
    output: list[str] = []
    with ctx.lock:
        for index, line in enumerate(lines):
            tokens: Optional[list[str]] = None
            try:
                tokens = tokenize(line)
                pairs = run_command(ctx, client, tokens, in_list=True)
            except CommandError as e:
                verb = tokens[0] if tokens else first_word(line)
                ack = _ack(e, index, verb)
                if ok_mode:
                    return ack
                return "".join(output) + ack
            output.append(render(pairs))
            if ok_mode:
                output.append("list_OK\n")
    output.append("OK\n")
    return "".join(output)
