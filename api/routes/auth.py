"""
认证辅助路由 - 登录前的邮箱允许名单校验
"""
from fastapi import APIRouter, Depends

from application.dto import EmailValidationRequestDTO, EmailValidationResultDTO
from domain.webhook import EmailAllowList
from core.response import success_response, Response as ApiResponse
from core.logging_config import get_logger
from api.dependencies import get_allow_list

logger = get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["认证"]
)


@router.post("/validate-email", summary="校验邮箱是否允许登录", response_model=ApiResponse[EmailValidationResultDTO])
async def validate_email(
    body: EmailValidationRequestDTO,
    allow_list: EmailAllowList = Depends(get_allow_list),
):
    """
    登录前检查邮箱

    - 邮箱或其域名在允许名单中即通过
    - 名单为空时所有邮箱均通过
    """
    if allow_list.is_allowed(body.email):
        result = EmailValidationResultDTO(valid=True)
    else:
        logger.info("email_rejected", domain=body.email.rpartition("@")[2])
        result = EmailValidationResultDTO(valid=False, reason=allow_list.describe_rejection(body.email))
    return success_response(data=result)
