"""
收件箱API路由 - 当前身份的 webhook 记录
"""
from fastapi import APIRouter, Depends

from application.dto import ClearResultDTO, WebhookEntryDTO
from application.services.realtime_service import RealtimeService
from application.services.webhook_store_service import WebhookStoreService
from domain.common.exceptions import EntryNotFoundException
from core.response import success_response, Response as ApiResponse
from api.dependencies import get_current_identity, get_realtime_service, get_store_service

router = APIRouter(
    prefix="/entries",
    tags=["收件箱"]
)


@router.get("", summary="列出收件箱", response_model=ApiResponse[list[WebhookEntryDTO]])
async def list_entries(
    identity: str = Depends(get_current_identity),
    store: WebhookStoreService = Depends(get_store_service),
):
    """按接收时间倒序返回未过期的记录"""
    entries = await store.list_inbox(identity)
    return success_response(data=[WebhookEntryDTO.from_entity(e) for e in entries])


@router.post("/restore", summary="从主集合恢复收件箱", response_model=ApiResponse[list[WebhookEntryDTO]])
async def restore_entries(
    identity: str = Depends(get_current_identity),
    realtime: RealtimeService = Depends(get_realtime_service),
):
    """
    清空收件箱后复制主集合中所有未过期记录

    同一身份的其它连接会收到 AllRestored
    """
    entries = await realtime.restore_all(identity)
    return success_response(data=[WebhookEntryDTO.from_entity(e) for e in entries], message="Inbox restored")


@router.get("/{entry_id}", summary="获取单条记录", response_model=ApiResponse[WebhookEntryDTO])
async def get_entry(
    entry_id: str,
    identity: str = Depends(get_current_identity),
    store: WebhookStoreService = Depends(get_store_service),
):
    entry = await store.get_inbox(identity, entry_id)
    if entry is None:
        raise EntryNotFoundException(entry_id)
    return success_response(data=WebhookEntryDTO.from_entity(entry))


@router.delete("/{entry_id}", summary="删除单条记录", response_model=ApiResponse[None])
async def delete_entry(
    entry_id: str,
    identity: str = Depends(get_current_identity),
    realtime: RealtimeService = Depends(get_realtime_service),
):
    """仅删除当前身份收件箱中的记录，主集合与其他身份不受影响"""
    removed = await realtime.delete_entry(identity, entry_id)
    if not removed:
        raise EntryNotFoundException(entry_id)
    return success_response(message="Entry deleted")


@router.delete("", summary="清空收件箱", response_model=ApiResponse[ClearResultDTO])
async def clear_entries(
    identity: str = Depends(get_current_identity),
    realtime: RealtimeService = Depends(get_realtime_service),
):
    deleted = await realtime.clear_all(identity)
    return success_response(data=ClearResultDTO(deleted=deleted), message="Inbox cleared")
