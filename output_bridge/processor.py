"""State owner for the bridge: every queued event is applied here, in order."""
from __future__ import annotations

import logging
from typing import Dict, List

from output_bridge.broadcaster import StateBroadcaster
from output_bridge.consumers import Consumer, ConsumerRegistry
from output_bridge.line_parser import ControlEvent, Noop, Update
from output_bridge.lookup import ReverseLookupResponder
from output_bridge.messages import (
    DEFAULT_MAX_NAME_LENGTH,
    BridgeEvent,
    ConnectionLost,
    ConnectionUp,
    RegisterRequest,
    ResolveRequest,
    SessionClosed,
    SessionOpened,
    UnregisterRequest,
)
from output_bridge.name_registry import NameRegistry

_LOGGER = logging.getLogger("OutputBridge.Processor")


class MessageProcessor:
    """Owns the name registry, session title and consumer registry.

    Not thread-safe. It must only be driven from the single processing
    context that drains the event queue.
    """

    def __init__(self, max_name_length: int = DEFAULT_MAX_NAME_LENGTH) -> None:
        self.names = NameRegistry()
        self.consumers = ConsumerRegistry()
        self._endpoints: Dict[int, Consumer] = {}
        self.broadcaster = StateBroadcaster(self.consumers, self.endpoints)
        self.responder = ReverseLookupResponder(self.names, max_name_length=max_name_length)
        self.upstream_connected = False

    def endpoints(self) -> List[Consumer]:
        return list(self._endpoints.values())

    def handle(self, event: BridgeEvent) -> None:
        if isinstance(event, Update):
            self._on_update(event)
        elif isinstance(event, ControlEvent):
            self._on_session_title(event)
        elif isinstance(event, ConnectionUp):
            self._on_connection_up(event)
        elif isinstance(event, ConnectionLost):
            self._on_connection_lost(event)
        elif isinstance(event, RegisterRequest):
            self.consumers.register(event.session)
            _LOGGER.info(
                "Consumer registered %s (client_id=%s, %d registered)",
                event.session.token,
                event.client_id,
                len(self.consumers),
            )
        elif isinstance(event, UnregisterRequest):
            if self.consumers.unregister(event.session):
                _LOGGER.info("Consumer unregistered %s", event.session.token)
        elif isinstance(event, ResolveRequest):
            self.responder.respond(event.session, event.output_id)
        elif isinstance(event, SessionOpened):
            self._endpoints[id(event.session)] = event.session
        elif isinstance(event, SessionClosed):
            self._endpoints.pop(id(event.session), None)
            self.consumers.prune(event.session)
        elif isinstance(event, Noop):
            return
        else:
            _LOGGER.debug("Ignoring unknown event %r", event)

    # Event handlers -------------------------------------------------------

    def _on_update(self, event: Update) -> None:
        output_id = self.names.resolve(event.name)
        self.broadcaster.broadcast_update(output_id, event.value)

    def _on_session_title(self, event: ControlEvent) -> None:
        self.names.set_session_title(event.title)
        _LOGGER.info("Producer session started: %s", event.title)
        self.broadcaster.broadcast_start(event.title)

    def _on_connection_up(self, event: ConnectionUp) -> None:
        self.names.reset()
        self.upstream_connected = True
        self.broadcaster.broadcast_start(self.names.session_title)
        _LOGGER.debug("Sent start with placeholder title %s", self.names.session_title)

    def _on_connection_lost(self, event: ConnectionLost) -> None:
        if not self.upstream_connected:
            return
        self.upstream_connected = False
        self.broadcaster.broadcast_stop()
        self.names.reset()
        _LOGGER.debug("Sent stop (%s) and cleared output registry", event.reason or "connection lost")
