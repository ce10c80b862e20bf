"""Ordered start-up and teardown of the consumer server and upstream connector."""
from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from output_bridge.config import BridgeSettings
from output_bridge.errors import BridgeStartupError
from output_bridge.socket_server import ConsumerServer
from output_bridge.upstream import UpstreamConnector


class _ServerLike(Protocol):
    thread: Optional[threading.Thread]

    def start(self) -> None: ...
    def stop(self) -> None: ...
    def submit(self, event) -> None: ...


class _ConnectorLike(Protocol):
    thread: Optional[threading.Thread]

    def start(self) -> None: ...
    def stop(self, timeout: float = 5.0) -> bool: ...


class BridgeRuntime:
    """Holds the two bridge threads and starts/stops them in a fixed order.

    The server (processing context) comes up first so no upstream event is
    queued before it can be applied; on shutdown the connector goes first.
    """

    def __init__(
        self,
        server: _ServerLike,
        connector: _ConnectorLike,
        logger: logging.Logger,
        *,
        join_timeout: float = 5.0,
    ) -> None:
        self.server = server
        self.connector = connector
        self._logger = logger
        self._join_timeout = join_timeout
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> bool:
        try:
            self.server.start()
        except BridgeStartupError as exc:
            self._logger.error("%s; is another bridge already running?", exc)
            return False
        self.connector.start()
        self._running = True
        self._logger.debug("Bridge threads started: %s", self.live_threads())
        return True

    def stop(self) -> None:
        connector_thread = self.connector.thread
        if not self.connector.stop(timeout=self._join_timeout):
            self._logger.warning("Upstream connector did not stop within %.1fs", self._join_timeout)
        server_thread = self.server.thread
        self.server.stop()
        self._running = False
        for thread in (connector_thread, server_thread):
            if thread is not None and thread.is_alive():
                self._logger.warning("Thread %s did not exit cleanly", thread.name)

    def live_threads(self) -> list:
        threads = (self.server.thread, self.connector.thread)
        return [thread.name for thread in threads if thread is not None and thread.is_alive()]


def build_runtime(settings: BridgeSettings, logger: logging.Logger) -> BridgeRuntime:
    """Wire a server and connector from ``settings``; nothing is started yet."""
    server_logger = logger.getChild("Server")
    upstream_logger = logger.getChild("Upstream")
    server = ConsumerServer(
        host=settings.listen_host,
        port=settings.listen_port,
        queue_size=settings.consumer_queue_size,
        max_name_length=settings.max_name_length,
        port_file=settings.port_file,
        log=server_logger.info,
        debug_log=server_logger.debug,
    )
    connector = UpstreamConnector(
        settings.upstream_host,
        settings.upstream_port,
        server.submit,
        terminator=settings.line_terminator,
        wake_token=settings.wake_token,
        reconnect_delay=settings.reconnect_delay,
        connect_timeout=settings.connect_timeout,
        log=upstream_logger.info,
        debug_log=upstream_logger.debug,
    )
    return BridgeRuntime(server, connector, logger)
