"""
AppError → HTTP 响应转换

按错误类别映射 HTTP 状态码与业务错误码，响应体统一为 {code, msg, data}。
"""

from typing import NoReturn

from fastapi import HTTPException, status

from leadexport.infra.errors import AppError, ErrorCategory
from leadexport.infra.reporter import ErrorReporter

# 类别 → (HTTP 状态码, 业务错误码)
CATEGORY_STATUS: dict[ErrorCategory, tuple[int, int]] = {
    ErrorCategory.VALIDATION: (status.HTTP_400_BAD_REQUEST, 1001),
    ErrorCategory.AUTH: (status.HTTP_401_UNAUTHORIZED, 1005),
    ErrorCategory.PERMISSION: (status.HTTP_403_FORBIDDEN, 1006),
    ErrorCategory.NETWORK: (status.HTTP_503_SERVICE_UNAVAILABLE, 1007),
    ErrorCategory.REMOTE: (status.HTTP_502_BAD_GATEWAY, 1008),
    ErrorCategory.BUSINESS: (status.HTTP_502_BAD_GATEWAY, 1009),
    ErrorCategory.UNKNOWN: (status.HTTP_500_INTERNAL_SERVER_ERROR, 1004),
}


def error_status(error: AppError) -> tuple[int, int]:
    """获取错误对应的 HTTP 状态码与业务错误码"""
    return CATEGORY_STATUS.get(error.category, CATEGORY_STATUS[ErrorCategory.UNKNOWN])


def error_payload(error: AppError) -> dict:
    """错误详情，附带展示方式（notice / alert）与面向用户的提示"""
    payload = error.to_dict()
    payload["presentation"] = ErrorReporter.presentation(error).value
    payload["user_message"] = ErrorReporter.user_message(error)
    return payload


def raise_app_error(error: AppError) -> NoReturn:
    """将 AppError 转换为 HTTPException 抛出"""
    status_code, code = error_status(error)
    raise HTTPException(
        status_code=status_code,
        detail={
            "code": code,
            "msg": error.message,
            "data": error_payload(error),
        },
    ) from error
