"""Downstream wire messages and the events handed to the processing context."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from output_bridge.line_parser import ControlEvent, Update

# Downstream event names. They mirror the producer's native output messages.
EVENT_START = "start"
EVENT_STOP = "stop"
EVENT_REGISTER = "register"
EVENT_UNREGISTER = "unregister"
EVENT_UPDATE_STATE = "update_state"
EVENT_GET_ID_STRING = "get_id_string"
EVENT_ID_STRING = "id_string"

DEFAULT_MAX_NAME_LENGTH = 255

Message = Dict[str, Any]


def start_message(title: str) -> Message:
    return {"event": EVENT_START, "title": title}


def stop_message() -> Message:
    return {"event": EVENT_STOP}


def update_message(output_id: int, value: int) -> Message:
    return {"event": EVENT_UPDATE_STATE, "id": output_id, "value": value}


def id_string_message(output_id: int, name: str, max_length: int = DEFAULT_MAX_NAME_LENGTH) -> Message:
    """Build a lookup reply; the name is truncated and its length sent explicitly."""
    bounded = name[: max(0, max_length)]
    return {"event": EVENT_ID_STRING, "id": output_id, "name": bounded, "length": len(bounded)}


def encode_message(message: Mapping[str, Any]) -> bytes:
    return (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")


def decode_message(line: bytes) -> Optional[Message]:
    """Decode one inbound JSON line, returning None for anything that is not an object."""
    try:
        payload = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    return payload


# Events consumed by MessageProcessor -------------------------------------


@dataclass(frozen=True)
class ConnectionUp:
    """The upstream connector reached the producer."""

    address: str = ""


@dataclass(frozen=True)
class ConnectionLost:
    """The upstream stream ended or failed."""

    reason: str = ""


@dataclass(frozen=True)
class SessionOpened:
    session: Any


@dataclass(frozen=True)
class SessionClosed:
    session: Any


@dataclass(frozen=True)
class RegisterRequest:
    session: Any
    client_id: Optional[int] = None


@dataclass(frozen=True)
class UnregisterRequest:
    session: Any


@dataclass(frozen=True)
class ResolveRequest:
    session: Any
    output_id: int


BridgeEvent = Union[
    ConnectionUp,
    ConnectionLost,
    Update,
    ControlEvent,
    SessionOpened,
    SessionClosed,
    RegisterRequest,
    UnregisterRequest,
    ResolveRequest,
]


def request_from_message(session: Any, message: Mapping[str, Any]) -> Optional[BridgeEvent]:
    """Translate a consumer message into a processor event.

    The requester of a lookup is always ``session``, the connection that
    carried the message. Handle-like fields in the payload are ignored.
    """
    event = message.get("event")
    if event == EVENT_REGISTER:
        client_id = message.get("client_id")
        if not isinstance(client_id, int) or isinstance(client_id, bool):
            client_id = None
        return RegisterRequest(session=session, client_id=client_id)
    if event == EVENT_UNREGISTER:
        return UnregisterRequest(session=session)
    if event == EVENT_GET_ID_STRING:
        output_id = message.get("id")
        if not isinstance(output_id, int) or isinstance(output_id, bool):
            return None
        return ResolveRequest(session=session, output_id=output_id)
    return None
