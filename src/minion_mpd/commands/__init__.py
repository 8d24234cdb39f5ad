"""Command handlers, one module per protocol command group.

Importing this package fills the COMMANDS table.
"""

from .registry import COMMANDS, CommandSpec, command

# Handler modules register on import
from . import connection, database, playback, queue, status  # noqa: E402,F401

__all__ = ["COMMANDS", "CommandSpec", "command"]
