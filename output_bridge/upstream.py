"""Blocking TCP reader for the producer's network output stream."""
from __future__ import annotations

import socket
import threading
from typing import Callable, Optional

from output_bridge.line_parser import LineBuffer, Noop, parse_line
from output_bridge.messages import BridgeEvent, ConnectionLost, ConnectionUp

LogFunc = Callable[[str], None]
EmitFunc = Callable[[BridgeEvent], None]

DEFAULT_WAKE_TOKEN = "\r\n"
READ_CHUNK_SIZE = 4096


class UpstreamConnector:
    """Keeps a connection to the producer open and forwards parsed lines.

    The connector never touches bridge state. Everything it learns is passed
    to ``emit`` in arrival order: ConnectionUp, then parsed lines, then
    ConnectionLost when the stream ends.
    """

    def __init__(
        self,
        host: str,
        port: int,
        emit: EmitFunc,
        *,
        terminator: str = "\r",
        wake_token: str = DEFAULT_WAKE_TOKEN,
        reconnect_delay: float = 2.0,
        connect_timeout: float = 5.0,
        log: LogFunc = lambda _msg: None,
        debug_log: Optional[LogFunc] = None,
    ) -> None:
        self.host = host
        self.port = port
        self._emit = emit
        self._terminator = terminator
        self._wake_token = wake_token.encode("utf-8")
        self._reconnect_delay = reconnect_delay
        self._connect_timeout = connect_timeout
        self._log = log
        self._log_debug = debug_log or (lambda _msg: None)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._sock_lock = threading.Lock()
        self._sock: Optional[socket.socket] = None
        self._buffer = LineBuffer(terminator)

    @property
    def thread(self) -> Optional[threading.Thread]:
        return self._thread

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="OutputBridge-Upstream", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> bool:
        """Close the socket, stop the read loop and wait for the thread."""
        self._stop_event.set()
        self._close_socket()
        thread = self._thread
        if thread is None:
            return True
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None
        return not thread.is_alive()

    def run(self) -> None:
        """Connect, read until the stream ends, wait, repeat until stopped."""
        self._log(f"Upstream connector started; waiting for producer on {self.host}:{self.port}")
        while not self._stop_event.is_set():
            sock = self._connect()
            if sock is None:
                self._stop_event.wait(self._reconnect_delay)
                continue
            reason = self._serve(sock)
            self._close_socket()
            self._buffer.clear()
            self._emit(ConnectionLost(reason=reason))
            self._log(f"Disconnected from producer ({reason})")
            if not self._stop_event.is_set():
                self._stop_event.wait(self._reconnect_delay)
        self._log("Upstream connector stopped")

    # Internal helpers -----------------------------------------------------

    def _connect(self) -> Optional[socket.socket]:
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self._connect_timeout)
        except OSError as exc:
            self._log_debug(f"Connect to {self.host}:{self.port} failed: {exc}")
            return None
        sock.settimeout(None)
        with self._sock_lock:
            if self._stop_event.is_set():
                sock.close()
                return None
            self._sock = sock
        return sock

    def _serve(self, sock: socket.socket) -> str:
        address = f"{self.host}:{self.port}"
        self._log(f"Connected to producer at {address}")
        self._emit(ConnectionUp(address=address))
        try:
            if self._wake_token:
                sock.sendall(self._wake_token)
            while not self._stop_event.is_set():
                chunk = sock.recv(READ_CHUNK_SIZE)
                if not chunk:
                    return "stream closed"
                for line in self._buffer.feed(chunk):
                    self._handle_line(line)
        except OSError as exc:
            if self._stop_event.is_set():
                return "shutdown"
            return str(exc) or exc.__class__.__name__
        return "shutdown"

    def _handle_line(self, line: str) -> None:
        self._log_debug(f"RAW: {line!r}")
        result = parse_line(line)
        if isinstance(result, Noop):
            return
        self._emit(result)

    def _close_socket(self) -> None:
        with self._sock_lock:
            sock = self._sock
            self._sock = None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()
