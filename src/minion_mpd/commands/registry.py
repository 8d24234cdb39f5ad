"""
Command table.

Handlers register themselves with the `command` decorator together with
their arity bounds and whether they mutate shared state.
"""

from typing import Callable, NamedTuple, Optional

# handler(ctx, client, args) -> list of (key, value) pairs
Handler = Callable[..., list[tuple[str, str]]]


class CommandSpec(NamedTuple):
    name: str
    handler: Handler
    min_args: int = 0
    max_args: Optional[int] = 0  # None = unbounded
    mutating: bool = False
    public: bool = False  # allowed before the password was given
    list_allowed: bool = True  # may appear inside a command list


COMMANDS: dict[str, CommandSpec] = {}


def command(
    name: str,
    min_args: int = 0,
    max_args: Optional[int] = 0,
    mutating: bool = False,
    public: bool = False,
    list_allowed: bool = True,
):
    """Register a handler under a protocol verb."""

    def decorator(func: Handler) -> Handler:
        COMMANDS[name] = CommandSpec(
            name, func, min_args, max_args, mutating, public, list_allowed
        )
        return func

    return decorator
