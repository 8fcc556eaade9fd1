"""Identity normalization and the email allow-list policy."""
from __future__ import annotations

from typing import Iterable, Optional


def normalize_identity(email: Optional[str]) -> Optional[str]:
    """Lower-case and trim an email; empty input means no identity."""
    if email is None:
        return None
    value = email.strip().lower()
    return value or None


class EmailAllowList:
    """Allow an identity if its email, or its domain, is listed.

    With both lists empty every verified identity is allowed.
    """

    def __init__(self, *, domains: Iterable[str] = (), emails: Iterable[str] = ()) -> None:
        self._domains = {d.strip().lower().lstrip("@") for d in domains if d and d.strip()}
        self._emails = {e for e in (normalize_identity(x) for x in emails) if e}

    @property
    def is_open(self) -> bool:
        return not self._domains and not self._emails

    def is_allowed(self, email: Optional[str]) -> bool:
        identity = normalize_identity(email)
        if not identity:
            return False
        if self.is_open:
            return True
        if identity in self._emails:
            return True
        _, sep, domain = identity.rpartition("@")
        if not sep:
            return False
        return domain in self._domains

    def describe_rejection(self, email: Optional[str]) -> str:
        identity = normalize_identity(email) or ""
        domain = identity.rpartition("@")[2] or identity
        allowed = ", ".join(f"@{d}" for d in sorted(self._domains)) or "listed addresses"
        return f"Access restricted to {allowed}. \"{domain}\" is not authorized."
