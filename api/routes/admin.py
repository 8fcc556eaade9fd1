"""
运维路由 - 手动触发过期清理
"""
import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Header

from application.dto import CleanupResultDTO
from application.services.webhook_store_service import WebhookStoreService
from core.config import settings
from core.exceptions import ForbiddenException, UnauthorizedException
from core.response import success_response, Response as ApiResponse
from infrastructure.tasks.tasks.cleanup import run_sweep
from api.dependencies import get_store_service

router = APIRouter(
    prefix="/admin",
    tags=["运维"]
)


def verify_cleanup_secret(x_cleanup_secret: Optional[str] = Header(default=None)) -> None:
    if not settings.CLEANUP_SECRET:
        raise ForbiddenException("Cleanup endpoint is disabled")
    if not x_cleanup_secret or not hmac.compare_digest(x_cleanup_secret, settings.CLEANUP_SECRET):
        raise UnauthorizedException("Invalid cleanup secret")


@router.post(
    "/cleanup",
    summary="清理过期记录",
    response_model=ApiResponse[CleanupResultDTO],
    dependencies=[Depends(verify_cleanup_secret)],
)
async def cleanup(store: WebhookStoreService = Depends(get_store_service)):
    """删除主集合中已过期的记录；开启 SWEEP_INCLUDE_INBOXES 时同时清理收件箱"""
    result = await run_sweep(store)
    return success_response(data=result, message="Cleanup completed")
