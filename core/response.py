"""
统一响应格式：{code, message, data, error}

HTTP 接口与 WebSocket 事件中的时间统一序列化为 UTC ISO8601（Z 结尾）。
"""
from typing import Any, Optional, Generic, TypeVar
from pydantic import BaseModel, Field, field_serializer
from datetime import datetime, timezone
from shared.codes import BusinessCode


T = TypeVar("T")


def utc_isoformat(value: Optional[datetime] = None) -> str:
    """UTC ISO8601，``+00:00`` 写作 ``Z``；naive 时间按 UTC 处理。"""
    ts = value or datetime.now(timezone.utc)
    ts = ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)
    return ts.isoformat().replace("+00:00", "Z")


class ErrorDetail(BaseModel):
    type: str
    details: Optional[dict] = None
    field: Optional[str] = None
    request_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("timestamp")
    def _serialize_timestamp(self, timestamp: datetime) -> str:
        return utc_isoformat(timestamp)


class Response(BaseModel, Generic[T]):
    """统一响应模型；成功时 error 为空，失败时 data 为空"""
    code: int
    message: str
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def success_response(
    data: Any = None,
    message: str = "Success",
    code: int = BusinessCode.SUCCESS,
) -> Response:
    return Response(code=code, message=message, data=data)


def error_response(
    code: int,
    message: str,
    error_type: str = "BusinessError",
    details: Optional[dict] = None,
    field: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Response:
    """
    创建错误响应

    Args:
        code: 业务状态码（决定 HTTP 状态，见 core.exceptions）
        message: 面向调用方的错误描述
        error_type: 异常类型名，如 EntryNotFound / StoreUnavailable
        details: 附加上下文（entry_id、operation 等）
        field: 参数校验失败时的字段路径
        request_id: 与 X-Request-ID 响应头一致，便于日志关联
    """
    return Response(
        code=code,
        message=message,
        error=ErrorDetail(
            type=error_type,
            details=details,
            field=field,
            request_id=request_id,
        ),
    )
