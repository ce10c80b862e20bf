"""Async TCP client that subscribes to an output bridge and forwards events to callbacks."""
from __future__ import annotations

import asyncio
import json
import logging
import queue
import threading
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

_LOGGER_NAME = "OutputBridge.Client.DataClient"
_LOGGER = logging.getLogger(_LOGGER_NAME)

StartCallback = Callable[[str], None]
StopCallback = Callable[[], None]
UpdateCallback = Callable[[int, int], None]
StatusCallback = Callable[[str], None]


def _noop(*_args: Any) -> None:
    return None


class OutputBridgeClient:
    """Connects to the bridge, registers, and keeps reconnecting until stopped.

    Callbacks run on the client's background thread. IDs are only meaningful
    until the next start/stop event, so the name cache is dropped on both.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: Optional[int] = 8001,
        *,
        port_file: Optional[Path] = None,
        client_id: Optional[int] = None,
        on_start: StartCallback = _noop,
        on_stop: StopCallback = _noop,
        on_update: UpdateCallback = _noop,
        on_status: StatusCallback = _noop,
        loop_sleep: float = 1.0,
    ) -> None:
        self._host = host
        self._port = port
        self._port_file = port_file
        self._client_id = client_id
        self._on_start = on_start
        self._on_stop = on_stop
        self._on_update = on_update
        self._on_status = on_status
        self._loop_sleep = loop_sleep
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_event = threading.Event()
        self._connected = threading.Event()
        self._outgoing: Optional[asyncio.Queue[Optional[Dict[str, Any]]]] = None
        self._pending: "queue.Queue[Dict[str, Any]]" = queue.Queue(maxsize=32)
        self._lookup_lock = threading.Lock()
        self._lookups: Dict[int, List[Future]] = {}
        self._names: Dict[int, str] = {}
        self.session_title: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    def wait_connected(self, timeout: Optional[float] = None) -> bool:
        return self._connected.wait(timeout)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._thread_main, name="OutputBridge-Client", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        loop = self._loop
        if loop is not None and loop.is_running():
            try:
                loop.call_soon_threadsafe(self._wake_sender)
            except RuntimeError:
                pass
        if self._thread:
            self._thread.join(timeout=5.0)
        self._loop = None
        self._thread = None
        self._outgoing = None
        self._fail_lookups(ConnectionError("client stopped"))

    def send(self, payload: Mapping[str, Any]) -> bool:
        """Queue a raw message for the bridge; returns False when the backlog is full."""
        message = dict(payload)
        loop = self._loop
        queue_ref = self._outgoing
        if loop is not None and queue_ref is not None:
            try:
                loop.call_soon_threadsafe(queue_ref.put_nowait, message)
                return True
            except RuntimeError as exc:
                _LOGGER.warning("Failed to enqueue payload on running loop; falling back to pending queue: %s", exc)
        try:
            self._pending.put_nowait(message)
        except queue.Full:
            return False
        return True

    def resolve(self, output_id: int) -> "Future[str]":
        """Ask the bridge for the name of ``output_id``; the future completes with the reply."""
        future: "Future[str]" = Future()
        with self._lookup_lock:
            cached = self._names.get(output_id)
            if cached is not None:
                future.set_result(cached)
                return future
            waiters = self._lookups.setdefault(output_id, [])
            waiters.append(future)
            first = len(waiters) == 1
        if first and not self.send({"event": "get_id_string", "id": output_id}):
            self._complete_lookup(output_id, exc=ConnectionError("outgoing queue full"))
        return future

    def unregister(self) -> bool:
        return self.send({"event": "unregister"})

    # Background thread ----------------------------------------------------

    def _thread_main(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        asyncio.set_event_loop(loop)
        try:
            loop.run_until_complete(self._run())
        finally:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    def _wake_sender(self) -> None:
        queue_ref = self._outgoing
        if queue_ref is not None:
            queue_ref.put_nowait(None)

    async def _run(self) -> None:
        backoff = 1.0
        while not self._stop_event.is_set():
            port = self._resolve_port()
            if port is None:
                self._on_status("Waiting for bridge port file")
                await asyncio.sleep(self._loop_sleep)
                continue
            try:
                reader, writer = await asyncio.open_connection(self._host, port)
            except (OSError, asyncio.TimeoutError) as exc:
                self._on_status(f"Connect failed: {exc}")
                _LOGGER.debug("Connect failed to %s:%s: %s", self._host, port, exc)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 1.5, 10.0)
                continue

            self._on_status(f"Connected to {self._host}:{port}")
            backoff = 1.0
            outgoing_queue: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue()
            register: Dict[str, Any] = {"event": "register"}
            if self._client_id is not None:
                register["client_id"] = self._client_id
            outgoing_queue.put_nowait(register)
            while not self._pending.empty():
                try:
                    outgoing_queue.put_nowait(self._pending.get_nowait())
                except queue.Empty:
                    break
            self._outgoing = outgoing_queue
            self._connected.set()
            sender_task = asyncio.create_task(self._flush_outgoing(writer, outgoing_queue))
            try:
                while not self._stop_event.is_set():
                    read_task = asyncio.ensure_future(reader.readline())
                    done, _ = await asyncio.wait({read_task, sender_task}, return_when=asyncio.FIRST_COMPLETED)
                    if read_task not in done:
                        read_task.cancel()
                        break
                    line = read_task.result()
                    if not line:
                        raise ConnectionError("Bridge closed the connection")
                    try:
                        payload = json.loads(line.decode("utf-8"))
                    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                        _LOGGER.debug("Dropped invalid payload from bridge: %s", exc)
                        continue
                    if isinstance(payload, dict):
                        self._dispatch(payload)
            except asyncio.CancelledError:
                raise
            except (ConnectionError, asyncio.IncompleteReadError, OSError) as exc:
                self._on_status(f"Disconnected: {exc}")
                _LOGGER.warning("Disconnected from output bridge: %s", exc)
            finally:
                self._connected.clear()
                self._outgoing = None
                if not sender_task.done():
                    outgoing_queue.put_nowait(None)
                try:
                    await sender_task
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # pragma: no cover - unexpected sender failures
                    _LOGGER.warning("Sender task terminated with error: %s", exc)
                try:
                    writer.close()
                    await writer.wait_closed()
                except OSError as exc:
                    _LOGGER.debug("Error closing writer: %s", exc)
                self._reset_names()
                self._fail_lookups(ConnectionError("connection to bridge lost"))
            if not self._stop_event.is_set():
                await asyncio.sleep(backoff)
                backoff = min(backoff * 1.5, 10.0)

    async def _flush_outgoing(
        self,
        writer: asyncio.StreamWriter,
        queue_ref: "asyncio.Queue[Optional[Dict[str, Any]]]",
    ) -> None:
        while not self._stop_event.is_set():
            payload = await queue_ref.get()
            if payload is None:
                break
            try:
                serialised = json.dumps(payload, ensure_ascii=False)
            except (TypeError, ValueError) as exc:
                _LOGGER.warning("Failed to serialise outgoing payload %s: %s", payload, exc)
                continue
            try:
                writer.write(serialised.encode("utf-8") + b"\n")
                await writer.drain()
            except (ConnectionError, OSError) as exc:
                _LOGGER.warning("Failed to write outgoing payload: %s", exc)
                break

    def _dispatch(self, payload: Mapping[str, Any]) -> None:
        event = payload.get("event")
        if event == "update_state":
            try:
                output_id = int(payload.get("id", 0))
                value = int(payload.get("value", 0))
            except (TypeError, ValueError):
                _LOGGER.debug("Dropped malformed update from bridge: %r", payload)
                return
            self._on_update(output_id, value)
        elif event == "id_string":
            try:
                output_id = int(payload.get("id", 0))
            except (TypeError, ValueError):
                _LOGGER.debug("Dropped malformed lookup reply from bridge: %r", payload)
                return
            name = str(payload.get("name", ""))
            length = payload.get("length")
            if isinstance(length, int) and 0 <= length < len(name):
                name = name[:length]
            self._complete_lookup(output_id, name=name)
        elif event == "start":
            self._reset_names()
            self.session_title = str(payload.get("title", ""))
            self._on_start(self.session_title)
        elif event == "stop":
            self._reset_names()
            self.session_title = None
            self._on_stop()
        else:
            _LOGGER.debug("Ignoring unknown bridge event %r", event)

    def _complete_lookup(self, output_id: int, *, name: str = "", exc: Optional[BaseException] = None) -> None:
        with self._lookup_lock:
            waiters = self._lookups.pop(output_id, [])
            if exc is None and name:
                self._names[output_id] = name
        for future in waiters:
            if future.done():
                continue
            if exc is not None:
                future.set_exception(exc)
            else:
                future.set_result(name)

    def _fail_lookups(self, exc: BaseException) -> None:
        with self._lookup_lock:
            output_ids = list(self._lookups)
        for output_id in output_ids:
            self._complete_lookup(output_id, exc=exc)

    def _reset_names(self) -> None:
        with self._lookup_lock:
            self._names.clear()

    def _resolve_port(self) -> Optional[int]:
        if self._port_file is None:
            return self._port
        try:
            data = json.loads(self._port_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError):
            return None
        port = data.get("port") if isinstance(data, dict) else None
        if isinstance(port, int) and port > 0:
            return port
        return None
