from __future__ import annotations

import logging

from output_bridge.config import BridgeSettings
from output_bridge.errors import BridgeStartupError
from output_bridge.runtime_services import BridgeRuntime, build_runtime
from output_bridge.socket_server import ConsumerServer
from output_bridge.upstream import UpstreamConnector


class _DummyServer:
    def __init__(self, calls, *, fail: bool = False) -> None:
        self.calls = calls
        self.fail = fail
        self.thread = None

    def start(self) -> None:
        self.calls.append("server.start")
        if self.fail:
            raise BridgeStartupError("port in use")

    def stop(self) -> None:
        self.calls.append("server.stop")

    def submit(self, event) -> None:
        self.calls.append(("submit", event))


class _DummyConnector:
    def __init__(self, calls, *, stop_ok: bool = True) -> None:
        self.calls = calls
        self.stop_ok = stop_ok
        self.thread = None

    def start(self) -> None:
        self.calls.append("connector.start")

    def stop(self, timeout: float = 5.0) -> bool:
        self.calls.append("connector.stop")
        return self.stop_ok


def test_start_brings_up_server_before_connector():
    calls = []
    runtime = BridgeRuntime(_DummyServer(calls), _DummyConnector(calls), logging.getLogger("test"))

    assert runtime.start() is True
    assert runtime.running is True
    assert calls == ["server.start", "connector.start"]


def test_start_failure_leaves_connector_idle(caplog):
    calls = []
    runtime = BridgeRuntime(_DummyServer(calls, fail=True), _DummyConnector(calls), logging.getLogger("test"))

    with caplog.at_level(logging.ERROR, logger="test"):
        assert runtime.start() is False

    assert calls == ["server.start"]
    assert runtime.running is False
    assert any("port in use" in record.getMessage() for record in caplog.records)


def test_stop_tears_down_connector_first(caplog):
    calls = []
    runtime = BridgeRuntime(_DummyServer(calls), _DummyConnector(calls, stop_ok=False), logging.getLogger("test"))
    runtime.start()
    calls.clear()

    with caplog.at_level(logging.WARNING, logger="test"):
        runtime.stop()

    assert calls == ["connector.stop", "server.stop"]
    assert runtime.running is False
    assert any("did not stop" in record.getMessage() for record in caplog.records)


def test_build_runtime_wires_connector_into_server_queue():
    settings = BridgeSettings(upstream_port=9000, listen_port=0, line_terminator="\n")

    runtime = build_runtime(settings, logging.getLogger("OutputBridge"))

    assert isinstance(runtime.server, ConsumerServer)
    assert isinstance(runtime.connector, UpstreamConnector)
    assert runtime.connector.port == 9000
    assert runtime.connector._emit == runtime.server.submit  # type: ignore[attr-defined]
    assert runtime.live_threads() == []
