"""Threaded JSON-over-TCP server that delivers bridge events to local consumers."""
from __future__ import annotations

import asyncio
import itertools
import json
import os
import queue
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional

from output_bridge.errors import BridgeStartupError
from output_bridge.messages import (
    BridgeEvent,
    Message,
    SessionClosed,
    SessionOpened,
    decode_message,
    encode_message,
    request_from_message,
)
from output_bridge.processor import MessageProcessor

LogFunc = Callable[[str], None]

_session_ids = itertools.count(1)


class ConsumerSession:
    """One connected consumer. ``send`` queues without blocking; a writer task drains."""

    def __init__(self, writer: asyncio.StreamWriter, queue_size: int, log: LogFunc) -> None:
        peer = writer.get_extra_info("peername")
        self.token = f"session-{next(_session_ids)}@{peer}"
        self._writer = writer
        self._outgoing: "asyncio.Queue[Optional[bytes]]" = asyncio.Queue(maxsize=queue_size)
        self._log = log
        self.alive = True
        self.dropped = 0
        self._closed = False
        self._task: Optional[asyncio.Task[None]] = None

    def __repr__(self) -> str:
        return f"ConsumerSession({self.token})"

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._flush_outgoing())

    def send(self, message: Message) -> bool:
        if not self.alive:
            return False
        try:
            self._outgoing.put_nowait(encode_message(message))
        except asyncio.QueueFull:
            if self.dropped == 0:
                self._log(f"Consumer {self.token} is not reading; dropping messages")
            self.dropped += 1
            return False
        return True

    async def close(self, timeout: float = 1.0) -> None:
        """Flush what the consumer will take within ``timeout``, then drop the connection."""
        if self._closed:
            return
        self._closed = True
        self.alive = False
        try:
            self._outgoing.put_nowait(None)
        except asyncio.QueueFull:
            pass
        stalled = False
        task = self._task
        if task is not None and not task.done():
            done, _ = await asyncio.wait({task}, timeout=timeout)
            if not done:
                stalled = True
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if stalled:
            # Unsent bytes would keep a graceful close waiting on the peer.
            self._writer.transport.abort()
            self._log(f"Consumer {self.token} stopped reading; connection aborted")
        else:
            self._writer.close()
        try:
            await asyncio.wait_for(self._writer.wait_closed(), timeout=timeout)
        except asyncio.TimeoutError:
            self._writer.transport.abort()
        except (ConnectionError, OSError):
            pass

    async def _flush_outgoing(self) -> None:
        while True:
            payload = await self._outgoing.get()
            if payload is None:
                return
            try:
                self._writer.write(payload)
                await self._writer.drain()
            except (ConnectionError, OSError) as exc:
                self._log(f"Write to consumer {self.token} failed: {exc}")
                self.alive = False
                return
            if self.dropped:
                self._log(f"Consumer {self.token} resumed after {self.dropped} dropped messages")
                self.dropped = 0


@dataclass
class ConsumerServer:
    """Runs the processing context: an asyncio loop on a background thread.

    Every state change goes through one FIFO queue shared by the upstream
    connector and consumer sessions. The loop applies them to the
    processor one at a time, so the processor needs no locking.
    """

    host: str = "127.0.0.1"
    port: int = 0
    queue_size: int = 256
    max_name_length: int = 255
    port_file: Optional[Path] = None
    log: LogFunc = lambda _msg: None  # noqa: E731 - simple default noop logger
    debug_log: LogFunc = lambda _msg: None  # noqa: E731
    processor: MessageProcessor = field(init=False)
    _loop: Optional[asyncio.AbstractEventLoop] = field(default=None, init=False)
    _thread: Optional[threading.Thread] = field(default=None, init=False)
    _stop_event: threading.Event = field(default_factory=threading.Event, init=False)
    _ready_event: threading.Event = field(default_factory=threading.Event, init=False)
    _startup_error: Optional[BaseException] = field(default=None, init=False)
    _queue: "queue.Queue[Optional[BridgeEvent]]" = field(default_factory=queue.Queue, init=False)
    _sessions: Dict[int, ConsumerSession] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        self.processor = MessageProcessor(max_name_length=self.max_name_length)

    @property
    def thread(self) -> Optional[threading.Thread]:
        return self._thread

    def start(self) -> None:
        """Bind the listener and start the processing thread."""
        if self._thread and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._ready_event.clear()
        self._startup_error = None
        self._thread = threading.Thread(target=self._run, name="OutputBridge-Server", daemon=True)
        self._thread.start()
        if not self._ready_event.wait(timeout=5.0):
            raise BridgeStartupError("Consumer server failed to start in time")
        if self._startup_error is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
            self._loop = None
            raise BridgeStartupError(
                f"Consumer server unavailable on {self.host}:{self.port} ({self._startup_error})"
            ) from self._startup_error
        self._write_port_file()

    def stop(self) -> None:
        """Stop the server and release resources."""
        self._stop_event.set()
        self._queue.put_nowait(None)
        if self._thread:
            self._thread.join(timeout=5.0)
        self._loop = None
        self._thread = None
        self._sessions.clear()
        self._delete_port_file()

    def submit(self, event: BridgeEvent) -> None:
        """Queue an event for the processing context. Safe from any thread."""
        if self._stop_event.is_set():
            return
        self._queue.put_nowait(event)

    # Internal helpers -----------------------------------------------------

    def _run(self) -> None:
        if self._loop is not None:
            return

        loop = asyncio.new_event_loop()
        self._loop = loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._server_main())
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    async def _server_main(self) -> None:
        try:
            server = await asyncio.start_server(self._handle_client, self.host, self.port)
        except OSError as exc:
            self._startup_error = exc
            self._ready_event.set()
            return
        sockets = server.sockets or []
        if sockets:
            self.port = sockets[0].getsockname()[1]
        self.log(f"Consumer server listening on {self.host}:{self.port}")
        self._ready_event.set()

        loop = asyncio.get_running_loop()
        async with server:
            while not self._stop_event.is_set():
                event = await loop.run_in_executor(None, self._queue.get)
                if event is None:
                    continue
                try:
                    self.processor.handle(event)
                except Exception as exc:  # pragma: no cover - keeps the loop alive
                    self.log(f"Failed to process {type(event).__name__}: {exc}")

            # Close sessions before the server waits on its connections.
            server.close()
            for session in list(self._sessions.values()):
                await session.close()
            self._sessions.clear()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        session = ConsumerSession(writer, self.queue_size, self.log)
        session.start()
        self._sessions[id(session)] = session
        self.submit(SessionOpened(session))
        self.log(f"Consumer connected ({len(self._sessions)} active) {session.token}")
        try:
            while not self._stop_event.is_set():
                line = await reader.readline()
                if not line:
                    break
                line = line.strip()
                if not line:
                    continue
                message = decode_message(line)
                request = request_from_message(session, message) if message is not None else None
                if request is None:
                    self.debug_log(f"Dropped invalid message from {session.token}: {line[:80]!r}")
                    continue
                self.submit(request)
        except (ConnectionError, OSError, asyncio.IncompleteReadError, ValueError) as exc:
            self.log(f"Consumer {session.token} read failed: {exc}")
        finally:
            self._sessions.pop(id(session), None)
            self.submit(SessionClosed(session))
            await session.close()
        self.log(f"Consumer disconnected ({len(self._sessions)} active) {session.token}")

    def _write_port_file(self) -> None:
        if self.port_file is None:
            return
        payload = {"host": self.host, "port": self.port, "pid": os.getpid()}
        try:
            self.port_file.parent.mkdir(parents=True, exist_ok=True)
            self.port_file.write_text(json.dumps(payload), encoding="utf-8")
        except OSError as exc:
            self.log(f"Failed to write port file {self.port_file}: {exc}")

    def _delete_port_file(self) -> None:
        if self.port_file is None:
            return
        try:
            self.port_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.log(f"Failed to delete port file {self.port_file}: {exc}")
