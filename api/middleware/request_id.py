"""
Request ID 中间件
生成或透传追踪ID，并通过contextvars传递给日志系统
"""
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件

    1. 从请求头获取或生成 request_id
    2. 存入 contextvars 与 structlog 上下文
    3. 在响应头中返回 request_id
    """

    HEADER_NAME = "X-Request-ID"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        client_ip = get_forwarded_ip(request)

        request.state.request_id = request_id
        request.state.client_ip = client_ip

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response


def get_forwarded_ip(request: Request) -> str:
    """客户端IP：X-Forwarded-For 首个地址 > X-Real-IP > 连接地址"""
    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        return x_forwarded_for.split(",")[0].strip()
    client_ip = request.headers.get("X-Real-IP")
    if client_ip:
        return client_ip
    return request.client.host if request.client else "unknown"


def bind_identity(identity: Optional[str]) -> None:
    """认证通过后把身份绑定进日志上下文"""
    if identity:
        structlog.contextvars.bind_contextvars(identity=identity)

