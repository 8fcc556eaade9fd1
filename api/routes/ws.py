"""WebSocket route for the live inbox.

- Authenticates with the same verifier and allow-list as HTTP routes.
- On connect: register, reconcile, send InitialData to this socket.
- Commands: DeleteEntry / ClearAll / RestoreAll, plus ping/pong.
- Heartbeat: server sends JSON ping on idle; closes after configurable
  missed pongs.
"""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from application.services.realtime_service import RealtimeService
from application.ports.realtime import (
    COMMAND_CLEAR_ALL,
    COMMAND_DELETE_ENTRY,
    COMMAND_RESTORE_ALL,
    Envelope,
)
from domain.common.exceptions import BusinessException
from core.logging_config import get_logger
from core.config import settings
from api.dependencies import authenticate


logger = get_logger(__name__)


router = APIRouter(prefix="/ws", tags=["WebSocket"])

# 1008: policy violation (认证失败/不在允许名单)
WS_CLOSE_POLICY_VIOLATION = 1008
WS_CLOSE_GOING_AWAY = 1001


def _extract_token(ws: WebSocket) -> str | None:
    # Prefer query param, fallback to header `Authorization: Bearer x`
    token = ws.query_params.get("token") or ws.query_params.get("access_token")
    if token:
        return token
    auth = ws.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return None


def _app_state(ws: WebSocket, name: str):
    svc = getattr(ws.app.state, name, None)
    if svc is None:
        raise RuntimeError(f"{name} not initialized. Ensure lifespan sets app.state.{name}.")
    return svc


async def _send_error(ws: WebSocket, message: str) -> None:
    await ws.send_json(Envelope(type="error", data={"message": message}).model_dump(mode="json"))


async def _handle_command(rt: RealtimeService, identity: str, ws: WebSocket, msg: dict) -> None:
    mtype = str(msg.get("type") or "").lower()
    if mtype == COMMAND_DELETE_ENTRY:
        entry_id = str(msg.get("id") or (msg.get("data") or {}).get("id") or "").strip()
        if not entry_id:
            await _send_error(ws, "id is required")
            return
        await rt.delete_entry(identity, entry_id)
    elif mtype == COMMAND_CLEAR_ALL:
        await rt.clear_all(identity)
    elif mtype == COMMAND_RESTORE_ALL:
        await rt.restore_all(identity)
    elif mtype == "ping":
        await ws.send_json(Envelope(type="pong").model_dump(mode="json"))
    elif mtype == "pong":
        # Client heartbeat reply; nothing else to do.
        return
    else:
        await _send_error(ws, "unknown message type")


@router.websocket("")
async def websocket_endpoint(ws: WebSocket) -> None:
    await ws.accept()
    token = _extract_token(ws)
    if not token:
        await ws.close(code=WS_CLOSE_POLICY_VIOLATION)
        return
    try:
        identity = await authenticate(
            token,
            _app_state(ws, "identity_verifier"),
            _app_state(ws, "allow_list"),
        )
    except BusinessException as exc:
        logger.info("ws_auth_rejected", error_type=exc.error_type)
        await ws.close(code=WS_CLOSE_POLICY_VIOLATION, reason=exc.message[:120])
        return

    rt: RealtimeService = _app_state(ws, "realtime_service")
    try:
        await rt.connect(identity, ws)
    except BusinessException as exc:
        logger.error("ws_connect_failed", identity=identity, error=exc.message)
        await rt.disconnect(identity, ws)
        await ws.close(code=1011)
        return

    try:
        # Heartbeat/idle detection parameters (configurable via .env)
        idle_ping_interval = float(settings.REALTIME_WS_IDLE_PING_INTERVAL_S)
        pong_grace = float(settings.REALTIME_WS_PONG_GRACE_S)
        missed_limit = int(settings.REALTIME_WS_MISSED_PING_LIMIT)

        missed = 0
        while True:
            if idle_ping_interval > 0:
                try:
                    msg = await asyncio.wait_for(ws.receive_json(), timeout=idle_ping_interval)
                except asyncio.TimeoutError:
                    # Idle: send ping and wait a short grace for response
                    missed += 1
                    await ws.send_json(Envelope(type="ping").model_dump(mode="json"))
                    try:
                        msg = await asyncio.wait_for(ws.receive_json(), timeout=pong_grace)
                        missed = 0
                    except asyncio.TimeoutError:
                        if missed > missed_limit:
                            await ws.close(code=WS_CLOSE_GOING_AWAY)
                            break
                        continue
            else:
                msg = await ws.receive_json()
            if not isinstance(msg, dict):
                await _send_error(ws, "message must be a JSON object")
                continue
            try:
                await _handle_command(rt, identity, ws, msg)
            except BusinessException as exc:
                # 命令失败只记录日志并丢弃，连接保持
                logger.warning(
                    "ws_command_failed",
                    identity=identity,
                    command=msg.get("type"),
                    error_type=exc.error_type,
                    error=exc.message,
                )
    except WebSocketDisconnect:
        logger.info("ws_client_disconnected", identity=identity)
    except Exception as exc:
        logger.error("ws_error", identity=identity, error=str(exc), exc_info=True)
    finally:
        await rt.disconnect(identity, ws)
