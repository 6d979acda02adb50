from __future__ import annotations

import socket
import socketserver
import threading
from enum import Enum
from typing import List, Optional, Sequence

from forkrun.cli.formatter import OutputFormatter
from forkrun.runtime.lifecycle import Lifecycle

DEFAULT_HOST = "127.0.0.1"
MAX_COMMAND_BYTES = 4096


class StopMonitorState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    STOPPING = "stopping"
    TERMINAL = "terminal"


class _StopRequestHandler(socketserver.StreamRequestHandler):
    def setup(self) -> None:
        self.timeout = self.server.monitor.read_timeout_seconds
        super().setup()

    def handle(self) -> None:
        monitor = self.server.monitor
        try:
            line = self.rfile.readline(MAX_COMMAND_BYTES)
        except OSError as exc:
            monitor.formatter.log(f"Stop connection dropped: {exc}", severity="debug")
            return

        if not line:
            return
        monitor.handle_command(line)


class _StopServer(socketserver.TCPServer):
    allow_reuse_address = True

    def handle_error(self, request, client_address) -> None:
        self.monitor.formatter.log(f"Stop connection from {client_address} failed.", severity="debug")


def strip_line_terminator(data: bytes) -> bytes:
    if data.endswith(b"\n"):
        data = data[:-1]
    if data.endswith(b"\r"):
        data = data[:-1]
    return data


class StopMonitor:
    """
    Loopback listener that stops the registered lifecycles when it receives
    the shared key on a line of its own.

    Idle -> Listening (start) -> Stopping (key matched) -> Terminal.
    Wrong keys, empty lines and dropped or silent connections are ignored
    and the monitor keeps listening. After a match it never listens again.
    """

    def __init__(
        self,
        port: int,
        key: str,
        lifecycles: Sequence[Lifecycle] = (),
        formatter: Optional[OutputFormatter] = None,
        host: str = DEFAULT_HOST,
        read_timeout_seconds: float = 5.0,
    ):
        self.host = host
        self.port = port
        self.key = key
        self.lifecycles: List[Lifecycle] = list(lifecycles)
        self.formatter = formatter or OutputFormatter()
        self.read_timeout_seconds = read_timeout_seconds

        self.state = StopMonitorState.IDLE
        self._key_bytes = key.encode("utf-8")
        self._lock = threading.Lock()
        self._terminated = threading.Event()
        self._server: Optional[_StopServer] = None
        self._thread: Optional[threading.Thread] = None

    def add_lifecycle(self, lifecycle: Lifecycle) -> None:
        self.lifecycles.append(lifecycle)

    def start(self) -> None:
        """Bind and start listening on a daemon thread. Valid once."""
        with self._lock:
            if self.state != StopMonitorState.IDLE:
                raise RuntimeError(f"Stop monitor cannot start from state '{self.state.value}'.")

            server = _StopServer((self.host, self.port), _StopRequestHandler)
            server.monitor = self
            self._server = server
            self.port = server.server_address[1]
            self.state = StopMonitorState.LISTENING

        self._thread = threading.Thread(
            target=server.serve_forever,
            kwargs={"poll_interval": 0.2},
            name="StopMonitor",
            daemon=True,
        )
        self._thread.start()
        self.formatter.log(f"Stop monitor listening on {self.host}:{self.port}", severity="debug")

    def handle_command(self, data: bytes) -> bool:
        """Return True when the line matched the key and shutdown began."""
        if strip_line_terminator(data) != self._key_bytes:
            self.formatter.log("Ignoring stop request with a wrong key.", severity="debug")
            return False

        with self._lock:
            if self.state != StopMonitorState.LISTENING:
                return False
            self.state = StopMonitorState.STOPPING

        self.formatter.log("Stop key received, stopping.", severity="info")
        for lifecycle in self.lifecycles:
            try:
                lifecycle.stop()
            except Exception as exc:
                self.formatter.log(f"Failed to stop {lifecycle!r}: {exc}", severity="error")

        # serve_forever is running this handler; shutdown() from here would deadlock
        threading.Thread(target=self._terminate, name="StopMonitor/shutdown", daemon=True).start()
        return True

    def _terminate(self) -> None:
        server = self._server
        if server is not None:
            server.shutdown()
            server.server_close()
        with self._lock:
            self.state = StopMonitorState.TERMINAL
        self._terminated.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the monitor has shut down."""
        return self._terminated.wait(timeout)

    def close(self) -> None:
        """Stop listening without stopping any lifecycle."""
        with self._lock:
            if self.state == StopMonitorState.IDLE:
                self.state = StopMonitorState.TERMINAL
                self._terminated.set()
                return
            if self.state != StopMonitorState.LISTENING:
                return
            self.state = StopMonitorState.STOPPING
        self._terminate()


def send_stop_command(host: str, port: int, key: str, timeout_seconds: float = 5.0) -> None:
    """Send the stop key and wait until the monitor closes the connection."""
    with socket.create_connection((host, port), timeout=timeout_seconds) as sock:
        sock.sendall(f"{key}\n".encode("utf-8"))
        while sock.recv(1024):
            pass
