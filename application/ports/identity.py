"""Identity verification port.

Tokens are issued by an external identity provider; the service only
verifies them and extracts the email claim.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class Principal:
    subject: str
    email: Optional[str] = None


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> Optional[Principal]:
        """Return the principal, None for an invalid token.

        Expired tokens raise TokenExpiredException so callers can tell the
        client to refresh.
        """
        ...


__all__ = ["Principal", "IdentityVerifier"]
