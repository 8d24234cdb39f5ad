"""
minion-mpd CLI - entry point

Runs the server (default), performs a one-shot library scan, or sends a
single command line to a running server.
"""

import argparse
import sys
from pathlib import Path
from typing import Optional

from rich.table import Table

from minion_mpd import client
from minion_mpd.core import config
from minion_mpd.core.console import get_console
from minion_mpd.core.database import PersistenceError
from minion_mpd.domain.library import ScanStats


def print_scan_summary(stats: ScanStats) -> None:
    """Render scan counts as a table."""
    table = Table(title=f"Library scan (generation {stats.generation})", min_width=40)
    table.add_column("Result", style="cyan")
    table.add_column("Files", justify="right")
    table.add_row("Added", str(stats.added))
    table.add_row("Updated", str(stats.updated))
    table.add_row("Unchanged", str(stats.unchanged))
    table.add_row("Deleted", str(stats.deleted))
    table.add_row("Kept for queue", str(stats.tombstoned))
    get_console().print(table)


def run_scan_command(cfg: config.Config, rescan: bool) -> int:
    from minion_mpd.main import run_scan

    try:
        stats = run_scan(cfg, rescan=rescan)
    except PersistenceError as e:
        print(f"Database error: {e}", file=sys.stderr)
        return 1
    print_scan_summary(stats)
    return 0


def send_command_line(cfg: config.Config, words: list[str]) -> int:
    """
    Send one command line to a running server.

    Args:
        cfg: Configuration (for the address and port)
        words: Command and arguments, joined with spaces

    Returns:
        Exit code (0 for OK, 1 for ACK or connection failure)
    """
    host = cfg.server.bind_address
    if host in ("0.0.0.0", ""):
        host = "127.0.0.1"
    success, message = client.send_command(host, cfg.server.port, " ".join(words))

    if success:
        if message:
            print(message)
        return 0
    else:
        print(message, file=sys.stderr)
        return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="minion-mpd",
        description="minion-mpd - a music server speaking the MPD protocol",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.toml (default: searched in the project, cwd and XDG config dir)",
    )

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")
    subparsers.add_parser("run", help="Run the server (default)")

    scan_parser = subparsers.add_parser("scan", help="Scan the music directory once and exit")
    scan_parser.add_argument(
        "--rescan", action="store_true", help="Re-read tags of unchanged files too"
    )

    send_parser = subparsers.add_parser("send", help="Send a command to a running server")
    send_parser.add_argument("words", nargs="+", help="Command line, e.g. status")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the minion-mpd command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    cfg = config.load_config(args.config)

    if args.subcommand == "scan":
        sys.exit(run_scan_command(cfg, args.rescan))
    if args.subcommand == "send":
        sys.exit(send_command_line(cfg, args.words))

    from minion_mpd.main import run_server

    sys.exit(run_server(cfg))


if __name__ == "__main__":
    main()
