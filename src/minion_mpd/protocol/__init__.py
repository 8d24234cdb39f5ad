"""Protocol layer - tokenizing requests, ACK codes, responses and idle."""

from .errors import (
    Ack,
    ArgError,
    ArgListError,
    CommandError,
    NoExistError,
    NotListError,
    PermissionDenied,
    UnknownCommandError,
    format_ack,
)
from .idle import SUBSYSTEMS, IdleBroker, IdleSubscriber
from .parser import tokenize

__all__ = [
    "Ack",
    "ArgError",
    "ArgListError",
    "CommandError",
    "NoExistError",
    "NotListError",
    "PermissionDenied",
    "UnknownCommandError",
    "format_ack",
    "SUBSYSTEMS",
    "IdleBroker",
    "IdleSubscriber",
    "tokenize",
]
