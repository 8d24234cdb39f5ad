"""
Connection and reflection command handlers for minion-mpd.

Handles: close, ping, password, tagtypes, commands, notcommands,
urlhandlers, decoders
"""

from minion_mpd.context import ClientState, ServerContext
from minion_mpd.domain.library import TAG_FIELDS
from minion_mpd.protocol.errors import Ack, ArgError, CommandError
from minion_mpd.protocol.response import Pairs

from .registry import COMMANDS, command

CANONICAL_TAGS = {name.lower(): name for name in TAG_FIELDS}


@command("close", public=True, list_allowed=False)
def handle_close(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    client.closing = True
    return []


@command("ping", public=True)
def handle_ping(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    return []


@command("password", min_args=1, max_args=1, public=True)
def handle_password(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    expected = ctx.config.server.password
    if expected is None or args[0] != expected:
        raise CommandError("incorrect password", Ack.PASSWORD)
    client.authenticated = True
    return []


def _tag_names(args: list[str]) -> list[str]:
    names = []
    for arg in args:
        name = CANONICAL_TAGS.get(arg.lower())
        if name is None:
            raise ArgError(f"Unknown tag type: {arg}")
        names.append(name)
    return names


@command("tagtypes", max_args=None, public=True)
def handle_tagtypes(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    """List enabled tag types, or change them with enable/disable/clear/all."""
    if not args:
        return [("tagtype", name) for name in TAG_FIELDS if name in client.tag_types]

    action, names = args[0], args[1:]
    if action == "enable":
        client.tag_types.update(_tag_names(names))
    elif action == "disable":
        client.tag_types.difference_update(_tag_names(names))
    elif action == "clear":
        client.tag_types.clear()
    elif action == "all":
        client.tag_types.update(TAG_FIELDS)
    else:
        raise ArgError(f"Unknown sub command: {action}")
    return []


def _allowed(client: ClientState, name: str) -> bool:
    return client.authenticated or COMMANDS[name].public


@command("commands", public=True)
def handle_commands(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    return [("command", name) for name in sorted(COMMANDS) if _allowed(client, name)]


@command("notcommands", public=True)
def handle_notcommands(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    return [("command", name) for name in sorted(COMMANDS) if not _allowed(client, name)]


@command("urlhandlers", public=True)
def handle_urlhandlers(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    # Only songs inside the managed music directory can be played
    return []


@command("decoders", public=True)
def handle_decoders(ctx: ServerContext, client: ClientState, args: list[str]) -> Pairs:
    pairs: Pairs = [("plugin", ctx.config.player.output)]
    for ext in ctx.config.music.supported_formats:
        pairs.append(("suffix", ext.lstrip(".")))
    return pairs
