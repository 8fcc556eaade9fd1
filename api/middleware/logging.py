"""
请求/响应日志中间件

- 每个 HTTP 请求记录 request_started / request_completed（附耗时）
- JSON 请求体按配置截断、脱敏后记录
- webhook 接收路径不记录请求体与查询参数：原始内容已完整入库
"""
import json
import time
from typing import Any, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from core.logging_config import get_logger
from core.config import settings


logger = get_logger(__name__)

_MASK = "***"


class LoggingMiddleware(BaseHTTPMiddleware):

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    CAPTURE_PREFIX = "/api/v1/webhook"

    SENSITIVE_KEYS = {"password", "token", "secret", "access_token", "id_token", "refresh_token"}

    def __init__(self, app: ASGIApp):
        super().__init__(app)
        self.body_log_default: bool = settings.LOG_REQUEST_BODY_ENABLE_BY_DEFAULT and settings.DEBUG
        self.max_body_bytes: int = settings.LOG_REQUEST_BODY_MAX_BYTES

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in self.SKIP_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        info = await self._request_info(request, is_capture=path.startswith(self.CAPTURE_PREFIX))
        logger.info("request_started", **info)

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "request_failed",
                duration=round(time.perf_counter() - started, 4),
                error_type=type(exc).__name__,
                error=str(exc),
                exc_info=True,
                **info,
            )
            raise

        duration = time.perf_counter() - started
        self._log_response(response, duration, info)
        response.headers["X-Process-Time"] = f"{duration:.3f}"
        return response

    async def _request_info(self, request: Request, *, is_capture: bool) -> dict:
        info: dict[str, Any] = {"method": request.method, "path": request.url.path}
        user_agent = request.headers.get("User-Agent")
        if user_agent:
            info["user_agent"] = user_agent
        if is_capture:
            return info

        if request.query_params:
            info["query_params"] = self._mask(dict(request.query_params))
        if request.method in {"POST", "PUT", "PATCH"} and self._wants_body(request):
            body = await self._json_body(request)
            if body is not None:
                info["body"] = body
        return info

    def _wants_body(self, request: Request) -> bool:
        # X-Log-Body: true/false 覆盖默认值
        header = (request.headers.get("X-Log-Body") or "").lower()
        if header in {"true", "1", "yes"}:
            return True
        if header in {"false", "0", "no"}:
            return False
        return self.body_log_default

    async def _json_body(self, request: Request) -> Optional[Any]:
        if "application/json" not in request.headers.get("content-type", "").lower():
            return None
        raw = await request.body()
        if not raw:
            return None
        text = raw[: self.max_body_bytes].decode("utf-8", errors="ignore")
        try:
            return self._mask(json.loads(text))
        except ValueError:
            # 截断后的 JSON 无法解析，记录原文片段
            return text

    def _mask(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: _MASK if str(k).lower() in self.SENSITIVE_KEYS else self._mask(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self._mask(v) for v in data]
        return data

    def _log_response(self, response: Response, duration: float, info: dict) -> None:
        status_code = response.status_code
        fields = {"status_code": status_code, "duration": round(duration, 4), **info}
        if status_code >= 500:
            logger.error("request_server_error", **fields)
        elif status_code >= 400:
            logger.warning("request_client_error", **fields)
        else:
            logger.info("request_completed", **fields)
