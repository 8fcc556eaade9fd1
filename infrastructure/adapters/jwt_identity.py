"""Infrastructure adapter that implements the application IdentityVerifier
on top of PyJWT.

Two modes:
  - shared secret (HS256 with ``settings.SECRET_KEY``), used for local runs
    and tests
  - JWKS (``settings.auth.jwks_url``), e.g. Firebase ID tokens signed RS256;
    signing keys are fetched and cached by ``PyJWKClient``
"""
from __future__ import annotations

import asyncio
from typing import Optional, Sequence

import jwt
from jwt import PyJWKClient

from application.ports.identity import IdentityVerifier, Principal
from core.exceptions import TokenExpiredException
from core.logging_config import get_logger


logger = get_logger(__name__)


class JWTIdentityVerifier(IdentityVerifier):
    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        algorithms: Sequence[str] = ("HS256",),
        jwks_url: Optional[str] = None,
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
        email_claim: str = "email",
    ) -> None:
        if not jwks_url and not secret_key:
            raise ValueError("JWTIdentityVerifier requires either secret_key or jwks_url")
        self._secret_key = secret_key
        self._algorithms = list(algorithms)
        self._jwks_client = PyJWKClient(jwks_url) if jwks_url else None
        self._audience = audience
        self._issuer = issuer
        self._email_claim = email_claim

    @classmethod
    def from_settings(cls, settings) -> "JWTIdentityVerifier":
        auth = settings.auth
        if auth.jwks_url:
            return cls(
                jwks_url=auth.jwks_url,
                algorithms=auth.algorithms,
                audience=auth.audience,
                issuer=auth.issuer,
                email_claim=auth.email_claim,
            )
        return cls(
            secret_key=settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=auth.audience,
            issuer=auth.issuer,
            email_claim=auth.email_claim,
        )

    async def _signing_key(self, token: str):
        if self._jwks_client is None:
            return self._secret_key
        # PyJWKClient 使用同步 HTTP 拉取公钥，放到线程中避免阻塞事件循环
        signing_key = await asyncio.to_thread(self._jwks_client.get_signing_key_from_jwt, token)
        return signing_key.key

    async def verify(self, token: str) -> Optional[Principal]:
        """
        - Expired token: raise TokenExpiredException
        - Invalid token (signature, audience, issuer, missing sub): return None
        """
        if not token:
            return None
        try:
            key = await self._signing_key(token)
            payload = jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                issuer=self._issuer,
                options={"verify_aud": self._audience is not None},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.PyJWKClientError as exc:
            logger.warning("jwks_key_lookup_failed", error=str(exc))
            return None
        except jwt.InvalidTokenError as exc:
            logger.debug("token_rejected", error=str(exc))
            return None

        subject = payload.get("sub")
        if not subject:
            return None
        email = payload.get(self._email_claim)
        return Principal(subject=str(subject), email=str(email) if email else None)


__all__ = ["JWTIdentityVerifier"]
