"""Application service for realtime WebSocket workflows.

Keeps application logic (registration, reconciliation, per-identity
commands) separate from the concrete connection management and broadcast
transport.
"""
from __future__ import annotations

from typing import Any, List, Optional

from fastapi import WebSocket

from application.dto import WebhookEntryDTO, entries_payload
from application.ports.realtime import (
    EVENT_ALL_CLEARED,
    EVENT_ALL_RESTORED,
    EVENT_ENTRY_DELETED,
    EVENT_INITIAL_DATA,
    EVENT_NEW_WEBHOOK,
    ROOM_ALL,
    Envelope,
    RealtimeBrokerPort,
    group_room,
    identity_from_room,
)
from application.services.sync_service import WebhookSyncService
from application.services.webhook_store_service import WebhookStoreService
from domain.webhook import WebhookEntry
from infrastructure.realtime.active_registry import ActiveConnectionRegistry
from infrastructure.realtime.connection_manager import ConnectionManager
from core.logging_config import get_logger


logger = get_logger(__name__)


class RealtimeService:
    def __init__(
        self,
        *,
        broker: RealtimeBrokerPort,
        connections: ConnectionManager,
        registry: ActiveConnectionRegistry,
        sync: WebhookSyncService,
        store: WebhookStoreService,
    ) -> None:
        self._broker = broker
        self._conn = connections
        self._registry = registry
        self._sync = sync
        self._store = store

    # Connection lifecycle management
    async def connect(self, identity: str, ws: WebSocket) -> List[WebhookEntry]:
        """Register the connection, reconcile its inbox, send the snapshot.

        The snapshot goes to this socket only; other sockets of the same
        identity already hold their own copy.
        """
        # 1. Add connection to manager and mark identity active
        await self._conn.add(identity, ws)
        await self._registry.increment(identity)

        # 2. Additive reconciliation against master
        added = await self._sync.reconcile_on_connect(identity)

        # 3. Snapshot to the connecting socket
        entries = await self._store.list_inbox(identity)
        await self._conn.send_to(
            ws,
            Envelope(type=EVENT_INITIAL_DATA, data={"entries": entries_payload(entries)}),
        )
        logger.info("identity_connected", identity=identity, reconciled=added, snapshot=len(entries))
        return entries

    async def disconnect(self, identity: str, ws: WebSocket) -> None:
        """Handle WebSocket connection termination."""
        remaining = await self._registry.decrement(identity)
        await self._conn.remove(identity, ws)
        logger.info("identity_disconnected", identity=identity, remaining=remaining)

    # Public API (use-cases)
    async def announce_new_entry(self, entry: WebhookEntry) -> None:
        await self.broadcast(
            EVENT_NEW_WEBHOOK,
            {"entry": WebhookEntryDTO.from_entity(entry).model_dump(mode="json")},
        )

    async def delete_entry(self, identity: str, entry_id: str) -> bool:
        """Delete from the caller's inbox; notify the group only on success."""
        removed = await self._store.delete_inbox(identity, entry_id)
        if removed:
            await self.send_to_group(identity, EVENT_ENTRY_DELETED, {"id": entry_id})
        else:
            logger.info("entry_delete_missed", identity=identity, entry_id=entry_id)
        return removed

    async def clear_all(self, identity: str) -> int:
        deleted = await self._store.clear_inbox(identity)
        await self.send_to_group(identity, EVENT_ALL_CLEARED, {})
        return deleted

    async def restore_all(self, identity: str) -> List[WebhookEntry]:
        entries = await self._sync.restore(identity)
        await self.send_to_group(identity, EVENT_ALL_RESTORED, {"entries": entries_payload(entries)})
        return entries

    # Delivery primitives
    async def broadcast(self, event: str, data: dict[str, Any], *, sender: Optional[str] = None) -> None:
        await self._broker.publish(ROOM_ALL, Envelope(type=event, room=ROOM_ALL, data=data, sender=sender))

    async def send_to_group(self, identity: str, event: str, data: dict[str, Any]) -> None:
        room = group_room(identity)
        await self._broker.publish(room, Envelope(type=event, room=room, data=data, sender=identity))

    # Broker callback (cross-process events → in-process broadcast)
    async def on_broker_event(self, envelope: Envelope) -> None:
        if envelope.room == ROOM_ALL:
            await self._conn.broadcast_all(envelope)
        else:
            identity = identity_from_room(envelope.room)
            if identity is None:
                logger.warning("realtime_event_unroutable", type=envelope.type, room=envelope.room)
                return
            await self._conn.broadcast_group(identity, envelope)
        logger.debug("realtime_event_dispatched", type=envelope.type, room=envelope.room)

    # Expose for API convenience
    @property
    def connections(self) -> ConnectionManager:
        return self._conn

    @property
    def registry(self) -> ActiveConnectionRegistry:
        return self._registry
