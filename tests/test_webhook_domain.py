from datetime import datetime, timedelta, timezone

import pytest

from domain.common.exceptions import DomainValidationException
from domain.webhook import WEBHOOK_TTL, EmailAllowList, WebhookEntry, generate_entry_id, normalize_identity
from factories import make_entry


def test_generate_entry_id_is_short_hex():
    ids = {generate_entry_id() for _ in range(50)}
    assert len(ids) == 50
    for value in ids:
        assert len(value) == 12
        int(value, 16)


def test_capture_normalizes_method_and_computes_length():
    entry = make_entry(method="post", body="héllo")
    assert entry.method == "POST"
    assert entry.content_length == len("héllo".encode("utf-8"))
    assert entry.received_at.tzinfo is not None
    assert entry.expires_at is None


def test_capture_empty_optional_fields_become_none():
    entry = make_entry(channel="", query_string="", body=None)
    assert entry.channel is None
    assert entry.query_string is None
    assert entry.content_length == 0


def test_with_expiry_sets_ttl_once():
    entry = make_entry().with_expiry()
    assert entry.expires_at - entry.received_at == WEBHOOK_TTL
    again = entry.with_expiry(timedelta(hours=1))
    assert again.expires_at == entry.expires_at


def test_is_expired_boundary():
    received = datetime(2024, 1, 1, tzinfo=timezone.utc)
    entry = make_entry(received_at=received).with_expiry()
    assert not entry.is_expired(received + WEBHOOK_TTL - timedelta(seconds=1))
    assert entry.is_expired(received + WEBHOOK_TTL)


def test_naive_datetimes_are_treated_as_utc():
    entry = WebhookEntry(id="abc", received_at=datetime(2024, 1, 1), method="GET", path="/x")
    assert entry.received_at.tzinfo == timezone.utc


def test_invalid_entry_rejected():
    with pytest.raises(DomainValidationException):
        WebhookEntry(id="", received_at=datetime.now(timezone.utc), method="GET", path="/")
    with pytest.raises(DomainValidationException):
        make_entry(content_length=-1)


@pytest.mark.parametrize(
    "raw, expected",
    [(" Alice@Example.COM ", "alice@example.com"), ("", None), ("   ", None), (None, None)],
)
def test_normalize_identity(raw, expected):
    assert normalize_identity(raw) == expected


def test_allow_list_open_when_empty():
    allow = EmailAllowList()
    assert allow.is_open
    assert allow.is_allowed("anyone@anywhere.io")
    assert not allow.is_allowed("")


def test_allow_list_domain_and_email():
    allow = EmailAllowList(domains=["@Example.com"], emails=["Guest@other.org"])
    assert allow.is_allowed("bob@example.com")
    assert allow.is_allowed("guest@other.org")
    assert not allow.is_allowed("mallory@other.org")
    assert not allow.is_allowed("bob@sub.example.com")
    assert "other.org" in allow.describe_rejection("mallory@other.org")
