"""Terminal output for the minion-mpd command line.

Clients only ever see protocol replies; this console is for the operator
running the process: the `scan` summary table and the listening/shutdown
status lines printed by `serve`.
"""

from rich.console import Console

_console: Console | None = None


def get_console() -> Console:
    """Return the process-wide console, creating it on first use.

    `cli.print_scan_summary` renders its table here, so tests patch this
    function to capture a fixed-width rendering.
    """
    global _console
    if _console is None:
        _console = Console()
    return _console


def safe_print(message: str, style: str | None = None) -> None:
    """Print one operator status line, e.g. "listening on host:port" or a startup failure.

    Args:
        message: Line to print
        style: Rich style, "green" for normal status and "red" for failures
    """
    console = get_console()
    if style:
        console.print(message, style=style)
    else:
        console.print(message)
