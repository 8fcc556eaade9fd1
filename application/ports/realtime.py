"""
Realtime port and message DTOs (contracts-first).

The application layer publishes Envelopes through RealtimeBrokerPort and
never touches WebSocket or pub/sub clients directly.

Rooms:
  - ``ROOM_ALL``: every connection on every process
  - ``group_room(identity)``: every connection authenticated as ``identity``
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Protocol
from pydantic import BaseModel, Field
from core.response import utc_isoformat


# server -> client events
EVENT_INITIAL_DATA = "InitialData"
EVENT_NEW_WEBHOOK = "NewWebhook"
EVENT_ENTRY_DELETED = "EntryDeleted"
EVENT_ALL_CLEARED = "AllCleared"
EVENT_ALL_RESTORED = "AllRestored"

# client -> server commands (compared lower-cased)
COMMAND_DELETE_ENTRY = "deleteentry"
COMMAND_CLEAR_ALL = "clearall"
COMMAND_RESTORE_ALL = "restoreall"

ROOM_ALL = "all"
_GROUP_PREFIX = "group:"


def group_room(identity: str) -> str:
    return f"{_GROUP_PREFIX}{identity}"


def identity_from_room(room: Optional[str]) -> Optional[str]:
    if room and room.startswith(_GROUP_PREFIX):
        return room[len(_GROUP_PREFIX):] or None
    return None


class Envelope(BaseModel):
    """Unified WS message envelope passed around the system.

    Fields:
      - type: event name (InitialData/NewWebhook/...) or ping/pong/error
      - room: broadcast target (``all`` or ``group:<identity>``), None for direct sends
      - data: payload (JSON-serializable)
      - ts: server-generated UTC timestamp (ISO8601 with Z)
      - sender: identity that triggered the event, when there is one
    """

    type: str
    room: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    ts: str = Field(default_factory=lambda: utc_isoformat())
    sender: str | None = None


Handler = Callable[[Envelope], Awaitable[None]]


class RealtimeBrokerPort(Protocol):
    """Abstraction for cross-process broadcast.

    Implementations may be in-memory (single process) or Redis pub/sub.
    """

    async def publish(self, room: str, envelope: Envelope) -> None: ...

    async def subscribe(self, handler: Handler) -> None: ...

    async def aclose(self) -> None: ...  # pragma: no cover - optional


__all__ = [
    "Envelope",
    "RealtimeBrokerPort",
    "Handler",
    "ROOM_ALL",
    "group_room",
    "identity_from_room",
    "EVENT_INITIAL_DATA",
    "EVENT_NEW_WEBHOOK",
    "EVENT_ENTRY_DELETED",
    "EVENT_ALL_CLEARED",
    "EVENT_ALL_RESTORED",
    "COMMAND_DELETE_ENTRY",
    "COMMAND_CLEAR_ALL",
    "COMMAND_RESTORE_ALL",
]
