"""TCP server speaking the MPD protocol.

One thread accepts connections. Every connection gets a handler thread plus
a reader thread that feeds received lines into an inbox queue; the idle
broker wakes an idling connection by putting a marker into the same inbox,
so `idle` waits on a single queue for either input or a change.
"""

import queue
import socket
import threading
from typing import Callable, Optional

from loguru import logger

from minion_mpd import router
from minion_mpd.context import ServerContext
from minion_mpd.core.database import PersistenceError
from minion_mpd.protocol.errors import Ack, ArgError, CommandError, format_ack
from minion_mpd.protocol.idle import SUBSYSTEMS
from minion_mpd.protocol.parser import tokenize

PROTOCOL_VERSION = "0.24.0"

# Inbox markers
WAKE = object()
EOF = object()


class ClientConnection:
    """Protocol session on one connected socket."""

    def __init__(
        self,
        ctx: ServerContext,
        sock: socket.socket,
        address: str = "",
        on_close: Optional[Callable[["ClientConnection"], None]] = None,
        on_fatal: Optional[Callable[[Exception, str], None]] = None,
    ):
        self.ctx = ctx
        self.sock = sock
        self.address = address
        self.inbox: queue.Queue = queue.Queue()
        self.client = ctx.new_client(wake=lambda: self.inbox.put(WAKE))
        self._on_close = on_close
        self._on_fatal = on_fatal
        self._send_lock = threading.Lock()
        self._closed = threading.Event()
        self.thread: Optional[threading.Thread] = None

    def start(self) -> None:
        threading.Thread(
            target=self._read_lines, name=f"reader-{self.address}", daemon=True
        ).start()
        self.thread = threading.Thread(
            target=self._serve, name=f"client-{self.address}", daemon=True
        )
        self.thread.start()

    def send(self, text: str) -> None:
        with self._send_lock:
            self.sock.sendall(text.encode("utf-8"))

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self.ctx.broker.unsubscribe(self.client.subscriber)
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Peer already gone
        self.sock.close()
        logger.info(f"Client {self.address or 'local'} disconnected")
        if self._on_close:
            self._on_close(self)

    # -- threads --------------------------------------------------------------

    def _read_lines(self) -> None:
        try:
            with self.sock.makefile("r", encoding="utf-8", errors="replace", newline="\n") as rfile:
                for raw in rfile:
                    self.inbox.put(raw.rstrip("\r\n"))
        except (OSError, ValueError):
            # ValueError: the socket was closed under the reader
            pass
        finally:
            self.inbox.put(EOF)

    def _serve(self) -> None:
        verb = ""
        try:
            self.send(f"OK MPD {PROTOCOL_VERSION}\n")
            while not self.client.closing:
                line = self._next_line()
                if line is EOF:
                    break
                verb = router.first_word(line)
                self._handle_line(line)
        except PersistenceError as e:
            logger.exception("Persistence failure while serving a client")
            if self._on_fatal:
                self._on_fatal(e, verb)
        except OSError as e:
            logger.info(f"Connection to {self.address or 'local'} lost: {e}")
        finally:
            self.close()

    def _next_line(self):
        while True:
            item = self.inbox.get()
            if item is not WAKE:
                return item

    # -- protocol -------------------------------------------------------------

    def _handle_line(self, line: str) -> None:
        verb = router.first_word(line)
        if verb == "noidle":
            # Not idling: nothing to cancel and nothing to answer
            return
        if verb == "close":
            self.client.closing = True
            return
        if verb == "idle":
            self._idle(line)
            return
        if verb in router.LIST_BEGIN:
            self._command_list(ok_mode=verb == "command_list_ok_begin")
            return
        self.send(router.execute(self.ctx, self.client, line))

    def _idle(self, line: str) -> None:
        try:
            tokens = tokenize(line)
            router.run_command(self.ctx, self.client, tokens)
            names = tokens[1:]
            for name in names:
                if name not in SUBSYSTEMS:
                    raise ArgError(f"Unrecognized idle event: {name}")
        except CommandError as e:
            self.send(format_ack(e.code, 0, "idle", e.message) + "\n")
            return

        broker = self.ctx.broker
        subscriber = self.client.subscriber
        changed = broker.begin_idle(subscriber, names)
        while changed is None:
            item = self.inbox.get()
            if item is WAKE:
                changed = broker.collect(subscriber) or broker.begin_idle(subscriber, names)
                continue

            broker.cancel_idle(subscriber)
            if item is EOF:
                self.inbox.put(EOF)
                return
            # noidle, or a client that did not wait: end the idle with a bare OK
            self.send("OK\n")
            if router.first_word(item) != "noidle":
                self._handle_line(item)
            return

        self.send("".join(f"changed: {name}\n" for name in changed) + "OK\n")

    def _command_list(self, ok_mode: bool) -> None:
        limit = self.ctx.config.server.max_command_list_size
        lines: list[str] = []
        too_long = False
        while True:
            item = self._next_line()
            if item is EOF:
                self.inbox.put(EOF)
                return
            if router.first_word(item) == router.LIST_END:
                break
            if len(lines) >= limit:
                too_long = True
            else:
                lines.append(item)

        if too_long:
            self.send(
                format_ack(Ack.ARG, 0, "command_list_begin", "Command list too long") + "\n"
            )
            return
        self.send(router.execute_list(self.ctx, self.client, lines, ok_mode))


class MPDServer:
    """Accepts protocol clients on a TCP port."""

    def __init__(self, ctx: ServerContext, host: str = "127.0.0.1", port: int = 6600):
        self.ctx = ctx
        self.host = host
        self.port = port
        self.server_socket: Optional[socket.socket] = None
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self.fatal_error: Optional[Exception] = None
        self._stopped = threading.Event()
        self._connections: set[ClientConnection] = set()
        self._lock = threading.Lock()
        ctx.on_fatal = lambda error: self.fatal(error, "")

    @property
    def address(self) -> tuple[str, int]:
        """Bound (host, port); useful when started on port 0."""
        if self.server_socket is None:
            return self.host, self.port
        return self.server_socket.getsockname()[:2]

    def start(self) -> None:
        """Bind and start accepting in a background thread."""
        if self.running:
            return

        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server_socket.bind((self.host, self.port))
        self.server_socket.listen(16)
        self.server_socket.settimeout(1.0)  # Poll every second

        self.running = True
        self._stopped.clear()
        self.thread = threading.Thread(target=self._accept_loop, name="accept", daemon=True)
        self.thread.start()
        host, port = self.address
        logger.info(f"Listening on {host}:{port}")

    def serve_forever(self) -> None:
        self.start()
        self._stopped.wait()

    def stop(self) -> None:
        """Stop accepting, drop every client and wake serve_forever()."""
        self.running = False
        if self.server_socket:
            self.server_socket.close()

        with self._lock:
            connections = list(self._connections)
        for connection in connections:
            connection.close()

        if self.thread and self.thread.is_alive() and self.thread is not threading.current_thread():
            self.thread.join(timeout=2.0)
        self._stopped.set()

    def fatal(self, error: Exception, verb: str) -> None:
        """Tell every client about an unrecoverable failure, then shut down."""
        self.fatal_error = error
        line = format_ack(Ack.SYSTEM, 0, verb, str(error)) + "\n"
        with self._lock:
            connections = list(self._connections)
        for connection in connections:
            try:
                connection.send(line)
            except OSError:
                pass  # Client already gone
        logger.critical("Shutting down after persistence failure")
        threading.Thread(target=self.stop, name="fatal-stop", daemon=True).start()

    def _accept_loop(self) -> None:
        max_connections = self.ctx.config.server.max_connections
        while self.running:
            try:
                client_socket, (host, port) = self.server_socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self.running:  # Only log if we're still supposed to be running
                    logger.error(f"Error accepting connection: {e}")
                break

            client_socket.settimeout(None)
            with self._lock:
                full = len(self._connections) >= max_connections
            if full:
                logger.warning(f"Rejecting {host}:{port}: {max_connections} clients connected")
                client_socket.close()
                continue

            connection = ClientConnection(
                self.ctx,
                client_socket,
                address=f"{host}:{port}",
                on_close=self._forget,
                on_fatal=self.fatal,
            )
            with self._lock:
                self._connections.add(connection)
            logger.info(f"Client connected from {host}:{port}")
            connection.start()

    def _forget(self, connection: ClientConnection) -> None:
        with self._lock:
            self._connections.discard(connection)
