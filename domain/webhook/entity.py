"""Domain entity representing one captured inbound request."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Optional

from domain.common.exceptions import DomainValidationException

WEBHOOK_TTL = timedelta(hours=24)

_ENTRY_ID_LENGTH = 12


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def generate_entry_id() -> str:
    """Short opaque id: first 12 hex chars of a uuid4."""
    return uuid.uuid4().hex[:_ENTRY_ID_LENGTH]


@dataclass
class WebhookEntry:
    """A captured request. Never updated after creation, only deleted."""

    id: str
    received_at: datetime
    method: str
    path: str
    channel: Optional[str] = None
    query_string: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    content_type: Optional[str] = None
    body: Optional[str] = None
    source_ip: Optional[str] = None
    content_length: int = 0
    expires_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise DomainValidationException("Entry id must not be empty", field="id")
        if self.content_length is None or self.content_length < 0:
            raise DomainValidationException(
                "content_length must be non-negative",
                field="content_length",
                details={"content_length": self.content_length},
            )
        self.received_at = _ensure_utc(self.received_at)
        self.expires_at = _ensure_utc(self.expires_at)
        if self.headers is None:
            self.headers = {}

    @classmethod
    def capture(
        cls,
        *,
        method: str,
        path: str,
        channel: Optional[str] = None,
        query_string: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
        content_type: Optional[str] = None,
        body: Optional[str] = None,
        source_ip: Optional[str] = None,
        content_length: Optional[int] = None,
        received_at: Optional[datetime] = None,
    ) -> "WebhookEntry":
        """Build a fresh entry with a server-assigned id and timestamp."""
        if content_length is None:
            content_length = len(body.encode("utf-8")) if body else 0
        return cls(
            id=generate_entry_id(),
            received_at=received_at or datetime.now(timezone.utc),
            method=method.upper(),
            path=path,
            channel=channel or None,
            query_string=query_string or None,
            headers=dict(headers or {}),
            content_type=content_type,
            body=body,
            source_ip=source_ip,
            content_length=content_length,
        )

    def with_expiry(self, ttl: timedelta = WEBHOOK_TTL) -> "WebhookEntry":
        """Return a copy with ``expires_at`` set; an existing expiry is kept."""
        if self.expires_at is not None:
            return self
        return replace(self, expires_at=self.received_at + ttl)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = _ensure_utc(now) or datetime.now(timezone.utc)
        return self.expires_at <= now
