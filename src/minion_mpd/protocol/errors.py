"""
Protocol error codes and command errors.

A CommandError carries the ACK code the router reports for it:
`ACK [code@index] {verb} message`.
"""

from enum import IntEnum
from typing import Optional


class Ack(IntEnum):
    NOT_LIST = 1
    ARG = 2
    PASSWORD = 3
    PERMISSION = 4
    UNKNOWN = 5
    NO_EXIST = 50
    PLAYLIST_MAX = 51
    SYSTEM = 52
    PLAYLIST_LOAD = 53
    UPDATE_ALREADY = 54
    PLAYER_SYNC = 55
    EXIST = 56


class CommandError(Exception):
    """A command failed; the connection stays open."""

    code = Ack.ARG

    def __init__(self, message: str, code: Optional[Ack] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ArgError(CommandError):
    """A malformed or out-of-range argument value."""

    code = Ack.ARG


class ArgListError(CommandError):
    """Wrong number of arguments. Shares code 2 with ArgError."""

    code = Ack.ARG


class NotListError(CommandError):
    code = Ack.NOT_LIST


class UnknownCommandError(CommandError):
    code = Ack.UNKNOWN


class PermissionDenied(CommandError):
    code = Ack.PERMISSION


class NoExistError(CommandError):
    code = Ack.NO_EXIST


def format_ack(code: int, index: int, verb: str, message: str) -> str:
    """Render one ACK line, without the trailing newline."""
    return f"ACK [{int(code)}@{index}] {{{verb}}} {message}"
