from __future__ import annotations

import json
from typing import Any

from community_chat.infrastructure.ws.protocol import Envelope

PRIVATE_MESSAGE_EVENT = "chat.private_message"


def serialize_event(event_type: str, payload: dict[str, Any]) -> str:
    return json.dumps({"event": event_type, "data": payload})


def deserialize_event(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    data = json.loads(raw)
    return data["event"], data["data"]


def serialize_private_message(envelope: Envelope, recipient_id: int) -> str:
    return serialize_event(
        PRIVATE_MESSAGE_EVENT,
        {"recipient_id": recipient_id, "envelope": envelope.model_dump(mode="json")},
    )


def decode_private_message(data: dict[str, Any]) -> tuple[Envelope, int]:
    """Inverse of serialize_private_message for an already unwrapped event."""
    return Envelope.model_validate(data["envelope"]), int(data["recipient_id"])
