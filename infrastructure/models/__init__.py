"""Infrastructure models package exports."""
from .base import Base, metadata
from .webhook_entry import WebhookEntryModel, InboxEntryModel

__all__ = [
    "Base",
    "metadata",
    "WebhookEntryModel",
    "InboxEntryModel",
]
