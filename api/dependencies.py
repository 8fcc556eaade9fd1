"""
API依赖项 - 认证、授权与应用服务获取
"""
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from application.ports.identity import IdentityVerifier
from application.services.realtime_service import RealtimeService
from application.services.sync_service import WebhookSyncService
from application.services.webhook_store_service import WebhookStoreService
from domain.webhook import EmailAllowList, normalize_identity
from core.exceptions import ForbiddenException, UnauthorizedException
from api.middleware.request_id import bind_identity


# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="ID token issued by the identity provider",
    auto_error=False,
)


def _app_state(request: Request, name: str):
    svc = getattr(request.app.state, name, None)
    if svc is None:
        raise RuntimeError(f"{name} not initialized. Ensure lifespan sets app.state.{name}.")
    return svc


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """从Bearer token中提取token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("未提供认证凭据")


def get_store_service(request: Request) -> WebhookStoreService:
    return _app_state(request, "store_service")


def get_sync_service(request: Request) -> WebhookSyncService:
    return _app_state(request, "sync_service")


def get_realtime_service(request: Request) -> RealtimeService:
    return _app_state(request, "realtime_service")


def get_identity_verifier(request: Request) -> IdentityVerifier:
    return _app_state(request, "identity_verifier")


def get_allow_list(request: Request) -> EmailAllowList:
    return _app_state(request, "allow_list")


async def authenticate(token: str, verifier: IdentityVerifier, allow_list: EmailAllowList) -> str:
    """校验令牌并返回规范化身份（邮箱）。

    - 令牌无效或缺少邮箱：UnauthorizedException
    - 令牌过期：TokenExpiredException（由 verifier 抛出）
    - 不在允许名单：ForbiddenException
    """
    principal = await verifier.verify(token)
    if principal is None:
        raise UnauthorizedException("无效的认证凭据")
    identity = normalize_identity(principal.email)
    if identity is None:
        raise UnauthorizedException("令牌缺少邮箱声明")
    if not allow_list.is_allowed(identity):
        raise ForbiddenException(allow_list.describe_rejection(identity), email=identity)
    return identity


async def get_current_identity(
    token: str = Depends(get_token),
    verifier: IdentityVerifier = Depends(get_identity_verifier),
    allow_list: EmailAllowList = Depends(get_allow_list),
) -> str:
    """获取当前请求的身份"""
    identity = await authenticate(token, verifier, allow_list)
    bind_identity(identity)
    return identity
