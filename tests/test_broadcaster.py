from __future__ import annotations

from output_bridge.broadcaster import StateBroadcaster
from output_bridge.consumers import ConsumerRegistry


class _RecordingConsumer:
    def __init__(self, token: str, *, alive: bool = True, accept: bool = True) -> None:
        self.token = token
        self.alive = alive
        self.accept = accept
        self.messages = []

    def send(self, message) -> bool:
        if not self.alive or not self.accept:
            return False
        self.messages.append(message)
        return True


def _broadcaster(registry, endpoints=()):
    return StateBroadcaster(registry, lambda: list(endpoints))


def test_update_with_no_consumers_is_noop():
    registry = ConsumerRegistry()
    assert _broadcaster(registry).broadcast_update(1, 1) == 0


def test_update_reaches_every_registered_consumer():
    registry = ConsumerRegistry()
    first = _RecordingConsumer("a")
    second = _RecordingConsumer("b")
    registry.register(first)
    registry.register(second)

    delivered = _broadcaster(registry).broadcast_update(3, 7)

    assert delivered == 2
    assert first.messages == [{"event": "update_state", "id": 3, "value": 7}]
    assert second.messages == first.messages


def test_duplicate_registration_delivers_twice():
    registry = ConsumerRegistry()
    consumer = _RecordingConsumer("a")
    registry.register(consumer)
    registry.register(consumer)

    _broadcaster(registry).broadcast_update(1, 1)

    assert len(consumer.messages) == 2
    assert registry.unregister(consumer) is True
    assert len(registry) == 1


def test_unregister_unknown_consumer_is_noop():
    registry = ConsumerRegistry()
    registry.register(_RecordingConsumer("a"))
    assert registry.unregister(_RecordingConsumer("b")) is False
    assert len(registry) == 1


def test_dead_consumer_is_pruned_without_affecting_others():
    registry = ConsumerRegistry()
    dead = _RecordingConsumer("dead", alive=False)
    live = _RecordingConsumer("live")
    registry.register(dead)
    registry.register(dead)
    registry.register(live)

    delivered = _broadcaster(registry).broadcast_update(1, 0)

    assert delivered == 1
    assert live.messages == [{"event": "update_state", "id": 1, "value": 0}]
    assert dead not in registry
    assert live in registry


class _DisconnectingConsumer(_RecordingConsumer):
    def send(self, message) -> bool:
        self.alive = False
        return False


def test_consumer_that_dies_during_send_is_pruned():
    registry = ConsumerRegistry()
    dying = _DisconnectingConsumer("dying")
    registry.register(dying)

    assert _broadcaster(registry).broadcast_update(3, 1) == 0
    assert dying not in registry
    assert len(registry) == 0


def test_full_consumer_stays_registered():
    registry = ConsumerRegistry()
    slow = _RecordingConsumer("slow", accept=False)
    fast = _RecordingConsumer("fast")
    registry.register(slow)
    registry.register(fast)

    _broadcaster(registry).broadcast_update(2, 1)

    assert slow in registry
    assert fast.messages == [{"event": "update_state", "id": 2, "value": 1}]


def test_start_and_stop_reach_unregistered_endpoints():
    registry = ConsumerRegistry()
    registered = _RecordingConsumer("registered")
    listener = _RecordingConsumer("listener")
    registry.register(registered)
    broadcaster = _broadcaster(registry, endpoints=[registered, listener])

    assert broadcaster.broadcast_start("pacman") == 2
    assert broadcaster.broadcast_stop() == 2

    expected = [{"event": "start", "title": "pacman"}, {"event": "stop"}]
    assert registered.messages == expected
    assert listener.messages == expected


def test_for_each_iterates_snapshot():
    registry = ConsumerRegistry()
    first = _RecordingConsumer("a")
    registry.register(first)
    seen = []

    def _visit(consumer):
        seen.append(consumer.token)
        registry.register(_RecordingConsumer("late"))

    registry.for_each(_visit)

    assert seen == ["a"]
    assert len(registry) == 2
