"""Fan-out of state events to downstream consumers."""
from __future__ import annotations

import logging
from typing import Callable, Iterable, List

from output_bridge.consumers import Consumer, ConsumerRegistry
from output_bridge.messages import Message, start_message, stop_message, update_message

EndpointSource = Callable[[], Iterable[Consumer]]

_LOGGER = logging.getLogger("OutputBridge.Broadcaster")


class StateBroadcaster:
    """Delivers updates to registered consumers and start/stop to every endpoint.

    ``endpoints`` returns every connected consumer, registered or not. It is
    the broadcast address: start and stop reach processes that have not yet
    registered so they can discover the bridge.
    """

    def __init__(self, registry: ConsumerRegistry, endpoints: EndpointSource) -> None:
        self._registry = registry
        self._endpoints = endpoints

    def broadcast_update(self, output_id: int, value: int) -> int:
        """Send an update to each registered consumer; returns the number delivered."""
        if not len(self._registry):
            return 0
        message = update_message(output_id, value)
        delivered = 0
        failed: List[Consumer] = []

        def _deliver(consumer: Consumer) -> None:
            nonlocal delivered
            if consumer.send(message):
                delivered += 1
            else:
                failed.append(consumer)

        self._registry.for_each(_deliver)
        for consumer in failed:
            if not consumer.alive and self._registry.prune(consumer):
                _LOGGER.debug("Pruned dead consumer %s", consumer.token)
        return delivered

    def broadcast_start(self, title: str) -> int:
        return self._broadcast(start_message(title))

    def broadcast_stop(self) -> int:
        return self._broadcast(stop_message())

    def _broadcast(self, message: Message) -> int:
        delivered = 0
        for endpoint in list(self._endpoints()):
            if endpoint.send(message):
                delivered += 1
        return delivered
