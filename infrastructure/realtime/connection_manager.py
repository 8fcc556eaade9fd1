"""In-process WebSocket connection manager.

Keeps track of connections grouped by identity and provides broadcast
helpers for this process. Cross-process broadcast is handled by a
RealtimeBrokerPort implementation.
"""
from __future__ import annotations

import asyncio
from typing import Dict, Optional, Set

from fastapi import WebSocket

from application.ports.realtime import Envelope
from core.logging_config import get_logger
from core.config import settings


logger = get_logger(__name__)

_OVERFLOW_POLICIES = {"drop_oldest", "drop_new", "disconnect"}


class ConnectionManager:
    """Manage per-process WebSocket connections grouped by identity."""

    def __init__(self, *, queue_max: Optional[int] = None, overflow_policy: Optional[str] = None) -> None:
        # identity -> set[WebSocket]
        self._by_identity: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()
        # per-connection send queues and sender tasks
        self._send_queues: Dict[WebSocket, asyncio.Queue] = {}
        self._sender_tasks: Dict[WebSocket, asyncio.Task] = {}
        self._queue_max = max(1, int(queue_max or settings.REALTIME_WS_SEND_QUEUE_MAX))
        self._overflow_policy = overflow_policy or settings.REALTIME_WS_SEND_OVERFLOW_POLICY

    async def add(self, identity: str, ws: WebSocket) -> None:
        async with self._lock:
            self._by_identity.setdefault(identity, set()).add(ws)
            if ws not in self._send_queues:
                q: asyncio.Queue = asyncio.Queue(maxsize=self._queue_max)
                self._send_queues[ws] = q
                self._sender_tasks[ws] = asyncio.create_task(self._sender_loop(ws, q))
        logger.info("ws_connected", identity=identity)

    async def remove(self, identity: str, ws: WebSocket) -> None:
        async with self._lock:
            conns = self._by_identity.get(identity)
            if conns is not None:
                conns.discard(ws)
                if not conns:
                    self._by_identity.pop(identity, None)
            task = self._sender_tasks.pop(ws, None)
            if task is not None:
                task.cancel()
            self._send_queues.pop(ws, None)
        logger.info("ws_disconnected", identity=identity)

    async def connection_count(self, identity: Optional[str] = None) -> int:
        async with self._lock:
            if identity is not None:
                return len(self._by_identity.get(identity, set()))
            return len(self._send_queues)

    async def broadcast_all(self, envelope: Envelope) -> None:
        async with self._lock:
            targets = list(self._send_queues)
        if not targets:
            return
        payload = envelope.model_dump(mode="json")
        for ws in targets:
            await self._enqueue(ws, payload, context={"room": envelope.room})

    async def broadcast_group(self, identity: str, envelope: Envelope) -> None:
        async with self._lock:
            conns = list(self._by_identity.get(identity, set()))
        if not conns:
            return
        payload = envelope.model_dump(mode="json")
        for ws in conns:
            await self._enqueue(ws, payload, context={"identity": identity})

    async def send_to(self, ws: WebSocket, envelope: Envelope) -> None:
        """Queue a message for one connection only."""
        await self._enqueue(ws, envelope.model_dump(mode="json"), context={"direct": True})

    async def _enqueue(self, ws: WebSocket, payload: dict, context: dict) -> None:
        q = self._send_queues.get(ws)
        if q is None:
            return
        try:
            q.put_nowait(payload)
        except asyncio.QueueFull:
            policy = (self._overflow_policy or "drop_oldest").lower()
            if policy not in _OVERFLOW_POLICIES:
                logger.warning("ws_send_queue_policy_invalid", policy=policy, fallback="drop_oldest")
                policy = "drop_oldest"
            if policy == "drop_new":
                logger.warning("ws_send_queue_drop_new", **context)
                return
            if policy == "disconnect":
                logger.warning("ws_send_queue_disconnect", **context)
                try:
                    await ws.close(code=1013)
                except RuntimeError as exc:
                    logger.debug("ws_close_failed", error=str(exc))
                return
            # default: drop_oldest
            try:
                q.get_nowait()
            except asyncio.QueueEmpty:
                pass
            try:
                q.put_nowait(payload)
            except asyncio.QueueFull:
                logger.warning("ws_send_queue_drop_after_trim", **context)

    async def _sender_loop(self, ws: WebSocket, q: asyncio.Queue) -> None:
        try:
            while True:
                payload = await q.get()
                try:
                    await ws.send_json(payload)
                except Exception as exc:  # pragma: no cover
                    logger.warning("ws_send_failed", error=str(exc))
        except asyncio.CancelledError:  # graceful exit
            return
