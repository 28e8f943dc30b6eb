from __future__ import annotations

from enum import StrEnum


class EnvelopeType(StrEnum):
    PRIVATE_MESSAGE = "private_message"
    INCOMING_PRIVATE_MESSAGE = "incoming_private_message"
    PING = "ping"
    PONG = "pong"
    ERROR = "error"


class UserRole(StrEnum):
    USER = "user"
    ADMIN = "admin"
