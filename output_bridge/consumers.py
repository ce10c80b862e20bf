"""Consumer handles and the registry of subscribed consumers."""
from __future__ import annotations

from typing import Any, Callable, Iterator, List, Protocol

from output_bridge.messages import Message


class Consumer(Protocol):
    """Opaque downstream endpoint.

    ``send`` must never block. It returns False when the endpoint is gone or
    the message could not be queued. ``alive`` tells those two apart: only
    endpoints that are no longer alive get pruned.
    """

    token: Any
    alive: bool

    def send(self, message: Message) -> bool: ...


class ConsumerRegistry:
    """Consumers that asked for state updates.

    Registering the same consumer twice keeps both entries, so it receives
    each update twice until it unregisters. Only the processing context may
    touch an instance.
    """

    def __init__(self) -> None:
        self._consumers: List[Consumer] = []

    def __len__(self) -> int:
        return len(self._consumers)

    def __contains__(self, consumer: object) -> bool:
        return consumer in self._consumers

    def __iter__(self) -> Iterator[Consumer]:
        return iter(list(self._consumers))

    def register(self, consumer: Consumer) -> None:
        self._consumers.append(consumer)

    def unregister(self, consumer: Consumer) -> bool:
        """Remove one registration of ``consumer``; returns False if it had none."""
        try:
            self._consumers.remove(consumer)
        except ValueError:
            return False
        return True

    def prune(self, consumer: Consumer) -> int:
        """Drop every registration of a dead consumer and return how many were removed."""
        before = len(self._consumers)
        self._consumers = [item for item in self._consumers if item is not consumer]
        return before - len(self._consumers)

    def for_each(self, fn: Callable[[Consumer], Any]) -> None:
        for consumer in list(self._consumers):
            fn(consumer)
