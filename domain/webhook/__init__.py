"""Webhook domain exports."""
from .entity import WebhookEntry, WEBHOOK_TTL, generate_entry_id
from .identity import EmailAllowList, normalize_identity
from .repository import WebhookEntryRepository

__all__ = [
    "WebhookEntry",
    "WEBHOOK_TTL",
    "generate_entry_id",
    "EmailAllowList",
    "normalize_identity",
    "WebhookEntryRepository",
]
