"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class EntryNotFoundException(BusinessException):
    def __init__(self, entry_id: Optional[str] = None):
        details = {"entry_id": entry_id} if entry_id else None
        super().__init__(
            code=BusinessCode.ENTRY_NOT_FOUND,
            message="Webhook entry not found",
            error_type="EntryNotFound",
            details=details,
        )


class StoreUnavailableException(BusinessException):
    """后端存储调用失败（连接、事务、SQL 错误等）"""

    def __init__(self, operation: Optional[str] = None, reason: Optional[str] = None):
        details = {}
        if operation:
            details["operation"] = operation
        if reason:
            details["reason"] = reason
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message="Webhook store is unavailable",
            error_type="StoreUnavailable",
            details=details or None,
        )


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )
