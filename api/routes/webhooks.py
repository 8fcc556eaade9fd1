"""
Webhook 接收路由 - 公开端点，记录任意方法的入站请求

FastAPI 的 api_route 总会按 methods 过滤（缺省仅 GET），无法表达"任意方法"，
因此这里直接注册 Starlette Route，端点是 ASGI 可调用对象，不做方法过滤
（PURGE、PROPFIND 等非标准方法同样会被记录）。业务异常仍由全局异常处理器处理。
"""
from typing import Optional

from fastapi import Request
from starlette.background import BackgroundTask
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from application.dto import CaptureResultDTO
from domain.webhook import WebhookEntry
from core.response import success_response
from core.logging_config import get_logger
from api.dependencies import get_realtime_service, get_sync_service
from api.middleware.request_id import get_forwarded_ip


logger = get_logger(__name__)

CAPTURE_PATH = "/webhook"


def _capture_headers(request: Request) -> dict[str, str]:
    # 重复出现的请求头按 RFC 9110 以逗号合并；HTTP/2 伪头（以 ":" 开头）不记录
    return {
        key: ",".join(request.headers.getlist(key))
        for key in request.headers.keys()
        if not key.startswith(":")
    }


async def _capture(request: Request, channel: Optional[str]) -> WebhookEntry:
    raw = await request.body()
    query = request.url.query
    return WebhookEntry.capture(
        method=request.method,
        path=request.url.path,
        channel=channel,
        query_string=f"?{query}" if query else None,
        headers=_capture_headers(request),
        content_type=request.headers.get("content-type"),
        body=raw.decode("utf-8", errors="replace") if raw else None,
        source_ip=get_forwarded_ip(request),
        content_length=len(raw),
    )


class WebhookCaptureEndpoint:
    """记录请求到主集合并分发到在线身份的收件箱；路径后缀记为 channel"""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        channel = (request.path_params.get("channel") or "").strip("/") or None
        sync = get_sync_service(request)
        realtime = get_realtime_service(request)

        entry = await _capture(request, channel)
        saved = await sync.on_capture(entry)
        logger.info(
            "webhook_captured",
            entry_id=saved.id,
            method=saved.method,
            channel=saved.channel,
            content_length=saved.content_length,
        )
        body = success_response(
            data=CaptureResultDTO(id=saved.id, received_at=saved.received_at),
            message="Webhook received",
        )
        # 先返回回执，再推送 NewWebhook
        response = JSONResponse(
            body.model_dump(mode="json"),
            background=BackgroundTask(realtime.announce_new_entry, saved),
        )
        await response(scope, receive, send)


def capture_routes(prefix: str = "") -> list[Route]:
    """``ANY {prefix}/webhook`` 与 ``ANY {prefix}/webhook/{channel:path}``"""
    endpoint = WebhookCaptureEndpoint()
    base = f"{prefix}{CAPTURE_PATH}"
    return [
        Route(base, endpoint, name="receive_webhook"),
        Route(f"{base}/{{channel:path}}", endpoint, name="receive_channel_webhook"),
    ]
