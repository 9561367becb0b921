"""Session wire envelopes.

Every frame on ``/ws`` is a JSON object tagged by ``type``::

    {"type": "register", "device_id": "esp01"}      device -> server
    {"type": "ack", "id": 12}                       device -> server
    {"type": "telemetry", "data": {...}}            server -> all sessions
    {"type": "command", "data": {...}}              server -> device

Inbound frames are decoded into a closed set of models; anything that does not
match one of them is rejected here with ``ProtocolError``.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from kawewo.core.errors import ProtocolError

SQLITE_MAX_ID = 2**63 - 1


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class RegisterMessage(_Envelope):
    type: Literal["register"] = "register"
    device_id: Annotated[str, Field(min_length=1)]


class AckMessage(_Envelope):
    type: Literal["ack"] = "ack"
    # store ids are signed 64-bit
    id: Annotated[int, Field(ge=1, le=SQLITE_MAX_ID)]


class TelemetryMessage(_Envelope):
    type: Literal["telemetry"] = "telemetry"
    data: Dict[str, Any]


class CommandMessage(_Envelope):
    type: Literal["command"] = "command"
    data: Dict[str, Any]


InboundMessage = Annotated[Union[RegisterMessage, AckMessage], Field(discriminator="type")]
OutboundMessage = Union[TelemetryMessage, CommandMessage]

_inbound = TypeAdapter(InboundMessage)


def parse_inbound(raw: Union[str, bytes]) -> Union[RegisterMessage, AckMessage]:
    try:
        obj = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"not JSON: {e}", raw) from e

    if not isinstance(obj, dict):
        raise ProtocolError("envelope is not an object", raw)

    try:
        return _inbound.validate_python(obj)
    except ValidationError as e:
        kind = obj.get("type")
        if kind not in ("register", "ack"):
            raise ProtocolError(f"unsupported type {kind!r}", raw) from e
        raise ProtocolError(f"invalid {kind} message: {e.errors()[0].get('msg')}", raw) from e


def encode(message: OutboundMessage) -> str:
    return message.model_dump_json()
