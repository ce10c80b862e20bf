"""Bidirectional output name <-> integer ID table for one connection generation."""
from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

SENTINEL_TITLE = "___empty"
SESSION_TITLE_ID = 0
FIRST_OUTPUT_ID = 1
# IDs at or above this value are not announced in the log to avoid startup spam.
NEW_MAPPING_LOG_LIMIT = 1000

NewMappingCallback = Callable[[str, int], None]

_LOGGER = logging.getLogger("OutputBridge.Registry")


class NameRegistry:
    """Assigns stable IDs to output names until the next reset.

    ID 0 is reserved for the session title and is never issued by
    :meth:`resolve`. Numbering restarts at 1 after :meth:`reset`, so callers
    must not keep IDs across a reconnect.
    """

    def __init__(self, on_new_mapping: Optional[NewMappingCallback] = None) -> None:
        self._name_to_id: Dict[str, int] = {}
        self._id_to_name: Dict[int, str] = {}
        self._next_id = FIRST_OUTPUT_ID
        self._session_title = SENTINEL_TITLE
        self._on_new_mapping = on_new_mapping

    def __len__(self) -> int:
        return len(self._name_to_id)

    def __contains__(self, name: object) -> bool:
        return name in self._name_to_id

    @property
    def session_title(self) -> str:
        return self._session_title

    def set_session_title(self, title: str) -> None:
        self._session_title = title

    def resolve(self, name: str) -> int:
        """Return the ID for ``name``, allocating the next one on first sight."""
        existing = self._name_to_id.get(name)
        if existing is not None:
            return existing
        output_id = self._next_id
        self._next_id += 1
        self._name_to_id[name] = output_id
        self._id_to_name[output_id] = name
        if output_id < NEW_MAPPING_LOG_LIMIT:
            _LOGGER.info("New output '%s' -> ID %d", name, output_id)
        if self._on_new_mapping is not None:
            self._on_new_mapping(name, output_id)
        return output_id

    def reverse_lookup(self, output_id: int) -> str:
        """Return the name for ``output_id``; ID 0 is the session title, misses are ''."""
        if output_id == SESSION_TITLE_ID:
            return self._session_title
        return self._id_to_name.get(output_id, "")

    def reset(self) -> None:
        """Forget every mapping and restore the sentinel session title."""
        self._name_to_id.clear()
        self._id_to_name.clear()
        self._next_id = FIRST_OUTPUT_ID
        self._session_title = SENTINEL_TITLE
