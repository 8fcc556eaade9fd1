"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from pydantic import BaseModel, EmailStr, Field, model_serializer, ConfigDict
from typing import Optional
from datetime import datetime

from core.response import utc_isoformat
from domain.webhook import WebhookEntry


class DTOBase(BaseModel):
    """Base DTO: unify datetime serialization to UTC-Z for all subclasses."""

    @model_serializer(mode="wrap")
    def _serialize_model(self, handler):  # type: ignore[override]
        data = handler(self)

        def convert(value):
            if isinstance(value, datetime):
                return utc_isoformat(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            return value

        return convert(data)


class WebhookEntryDTO(DTOBase):
    """捕获的 webhook 请求"""
    id: str
    received_at: datetime
    expires_at: Optional[datetime] = None
    method: str
    path: str
    channel: Optional[str] = None
    query_string: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)
    content_type: Optional[str] = None
    body: Optional[str] = None
    source_ip: Optional[str] = None
    content_length: int = 0

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_entity(cls, entry: WebhookEntry) -> "WebhookEntryDTO":
        return cls.model_validate(entry)


def entries_payload(entries: list[WebhookEntry]) -> list[dict]:
    """Serialize entries for JSON transports (HTTP bodies, WS events)."""
    return [WebhookEntryDTO.from_entity(e).model_dump(mode="json") for e in entries]


class CaptureResultDTO(DTOBase):
    """Webhook 接收回执"""
    id: str
    received_at: datetime


class ClearResultDTO(DTOBase):
    deleted: int = Field(..., ge=0, description="删除的记录数")


class EmailValidationRequestDTO(DTOBase):
    email: EmailStr = Field(..., description="待校验邮箱")


class EmailValidationResultDTO(DTOBase):
    valid: bool
    reason: Optional[str] = None


class CleanupResultDTO(DTOBase):
    """手动/定时清理结果"""
    master_deleted: int = 0
    inbox_deleted: int = 0
    cutoff: datetime
