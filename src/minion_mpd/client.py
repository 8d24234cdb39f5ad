"""Client for sending one command line to a running minion-mpd server."""

import socket
from typing import Tuple


def _read_reply(rfile) -> Tuple[bool, str]:
    lines = []
    for raw in rfile:
        line = raw.rstrip("\n")
        if line == "OK":
            return True, "\n".join(lines)
        if line.startswith("ACK "):
            lines.append(line)
            return False, "\n".join(lines)
        lines.append(line)
    return False, "Connection closed before the reply was complete"


def send_command(host: str, port: int, line: str, timeout: float = 5.0) -> Tuple[bool, str]:
    """
    Send a command line to the server and collect its reply.

    Args:
        host: Server address
        port: Server port
        line: Request line, e.g. 'status' or 'add "Artist/Album"'
        timeout: Socket timeout in seconds

    Returns:
        (success, message) tuple
            success: True if the server answered OK
            message: Response lines without the trailing OK, or the ACK line
    """
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            with sock.makefile("r", encoding="utf-8", newline="\n") as rfile:
                greeting = rfile.readline()
                if not greeting.startswith("OK MPD "):
                    return False, f"Unexpected greeting: {greeting.strip()!r}"

                sock.sendall((line + "\n").encode("utf-8"))
                return _read_reply(rfile)

    except socket.timeout:
        return False, "minion-mpd not responding (timeout)"
    except ConnectionRefusedError:
        return False, "minion-mpd not running"
    except OSError as e:
        return False, f"Failed to send command: {e}"
