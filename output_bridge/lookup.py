"""Answers consumer requests for the name behind an output ID."""
from __future__ import annotations

import logging

from output_bridge.consumers import Consumer
from output_bridge.messages import DEFAULT_MAX_NAME_LENGTH, id_string_message
from output_bridge.name_registry import NameRegistry

_LOGGER = logging.getLogger("OutputBridge.Lookup")


class ReverseLookupResponder:
    """Replies to a single requester; lookups never touch the broadcast path."""

    def __init__(self, registry: NameRegistry, max_name_length: int = DEFAULT_MAX_NAME_LENGTH) -> None:
        self._registry = registry
        self._max_name_length = max_name_length

    def respond(self, requester: Consumer, output_id: int) -> bool:
        name = self._registry.reverse_lookup(output_id)
        if not name:
            _LOGGER.debug("Lookup miss for ID %d from %s", output_id, requester.token)
        return requester.send(id_string_message(output_id, name, self._max_name_length))
