"""Webhook entry database model definitions.

Master entries and per-identity inbox copies share one column layout;
inbox rows are keyed by ``(identity, id)``.
"""
from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Index,
    JSON,
    String,
    Text,
    text,
)

from .base import Base


class _EntryColumns:
    """Columns shared by the master table and the inbox table."""

    received_at = Column(
        DateTime(timezone=True),
        nullable=False,
        comment="接收时间（UTC）",
    )
    expires_at = Column(
        DateTime(timezone=True),
        nullable=False,
        comment="过期时间 = 接收时间 + TTL",
    )
    method = Column(String(16), nullable=False, comment="HTTP 方法")
    path = Column(String(2048), nullable=False, comment="请求路径")
    channel = Column(String(512), nullable=True, comment="路径后缀派生的频道名")
    query_string = Column(Text, nullable=True, comment="原始查询串")
    headers = Column(JSON, nullable=False, default=dict, comment="请求头（JSON）")
    content_type = Column(String(255), nullable=True, comment="Content-Type")
    body = Column(Text, nullable=True, comment="原始请求体文本")
    source_ip = Column(String(64), nullable=True, comment="来源 IP")
    content_length = Column(
        BigInteger,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="请求体长度（字节）",
    )


class WebhookEntryModel(_EntryColumns, Base):
    """ORM mapping for the master ``webhook_entries`` table."""

    __tablename__ = "webhook_entries"
    __table_args__ = (
        Index("ix_webhook_entries_received_at", "received_at"),
        Index("ix_webhook_entries_expires_at", "expires_at"),
        {"comment": "主记录表：所有捕获的 webhook，与用户无关"},
    )

    id = Column(String(32), primary_key=True, comment="条目ID")

    def __repr__(self) -> str:
        return "<WebhookEntryModel(id='{id}', method='{method}', path='{path}')>".format(
            id=self.id, method=self.method, path=self.path
        )


class InboxEntryModel(_EntryColumns, Base):
    """ORM mapping for the per-identity ``inbox_entries`` table."""

    __tablename__ = "inbox_entries"
    __table_args__ = (
        Index("ix_inbox_entries_identity_received", "identity", "received_at"),
        Index("ix_inbox_entries_expires_at", "expires_at"),
        {"comment": "用户收件箱：主记录的可变副本，按身份隔离"},
    )

    identity = Column(String(320), primary_key=True, comment="规范化邮箱（身份）")
    id = Column(String(32), primary_key=True, comment="条目ID（与主记录相同）")

    def __repr__(self) -> str:
        return "<InboxEntryModel(identity='{identity}', id='{id}')>".format(
            identity=self.identity, id=self.id
        )
