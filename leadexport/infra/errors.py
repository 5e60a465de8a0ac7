"""
错误模型与错误分类

实现：
- AppError：统一的、创建后不可变的错误对象
- Ok / Err：传输层的显式结果类型
- ErrorClassifier：将异常或失败的远端响应归一化为 AppError
"""

import asyncio
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, NoReturn, TypeVar, Union

import httpx
from pydantic import ValidationError

T = TypeVar("T")


class ErrorCategory(str, Enum):
    """错误类别"""

    NETWORK = "network"
    REMOTE = "remote"
    VALIDATION = "validation"
    AUTH = "auth"
    PERMISSION = "permission"
    BUSINESS = "business"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    """错误严重程度（仅用于选择展示方式，不影响重试策略）"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode(str, Enum):
    """常用错误码"""

    AUTH_ERROR = "auth_error"
    FORBIDDEN = "forbidden"
    INVALID_REQUEST = "invalid_request"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    UNEXPECTED_RESPONSE = "unexpected_response"
    TIMEOUT = "timeout"
    CONNECTION_ERROR = "connection_error"
    PROSPECT_REJECTED = "prospect_rejected"
    CONTENT_INCOMPLETE = "content_incomplete"
    INVALID_ITEM = "invalid_item"
    PIPELINE_ERROR = "pipeline_error"
    UNKNOWN = "unknown_error"


class AppError(Exception):
    """
    统一错误对象

    所有跨组件边界的失败都以 AppError 表示。属性在构造后只读，
    需要附加信息时通过 with_context() 生成新对象。
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        code: str | None = None,
        details: Any = None,
        retryable: bool = False,
        timestamp: datetime | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self._message = message
        self._category = ErrorCategory(category)
        self._severity = ErrorSeverity(severity)
        self._code = code.value if isinstance(code, ErrorCode) else code
        self._details = details
        self._retryable = retryable
        self._timestamp = timestamp or datetime.now(timezone.utc)
        self._context = dict(context) if context else {}

    @property
    def message(self) -> str:
        return self._message

    @property
    def category(self) -> ErrorCategory:
        return self._category

    @property
    def severity(self) -> ErrorSeverity:
        return self._severity

    @property
    def code(self) -> str | None:
        return self._code

    @property
    def details(self) -> Any:
        return self._details

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def timestamp(self) -> datetime:
        return self._timestamp

    @property
    def context(self) -> dict[str, Any]:
        # 返回副本，调用方修改不影响原对象
        return dict(self._context)

    def with_context(self, **context: Any) -> "AppError":
        """返回合并了额外上下文的新 AppError"""
        merged = {**self._context, **context}
        return AppError(
            message=self._message,
            category=self._category,
            severity=self._severity,
            code=self._code,
            details=self._details,
            retryable=self._retryable,
            timestamp=self._timestamp,
            context=merged,
        )

    def to_dict(self) -> dict[str, Any]:
        """转换为可序列化的字典"""
        return {
            "message": self._message,
            "category": self._category.value,
            "severity": self._severity.value,
            "code": self._code,
            "retryable": self._retryable,
            "timestamp": self._timestamp.isoformat(),
            "context": dict(self._context),
        }

    def __str__(self) -> str:
        return f"[{self._category.value}] {self._message}"

    def __repr__(self) -> str:
        return (
            f"AppError(category={self._category.value}, severity={self._severity.value}, "
            f"code={self._code}, retryable={self._retryable}, message={self._message!r})"
        )


# ============== 传输层结果类型 ==============


@dataclass(frozen=True)
class Ok(Generic[T]):
    """成功结果"""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """失败结果，携带已分类的错误"""

    error: AppError

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        raise self.error


Result = Union[Ok[T], Err]


# ============== 错误分类 ==============


def _extract_error_detail(response: httpx.Response) -> str:
    """
    从失败响应中提取错误描述

    依次尝试 status.msg、error、message 字段，最后退回响应文本。
    """
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text or f"HTTP {response.status_code}"

    if isinstance(body, dict):
        status = body.get("status")
        if isinstance(status, dict) and status.get("msg"):
            return str(status["msg"])
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message", error))
        if error:
            return str(error)
        if body.get("message"):
            return str(body["message"])
    return response.text or f"HTTP {response.status_code}"


class ErrorClassifier:
    """错误分类器：纯函数，不产生副作用"""

    @staticmethod
    def classify_response(
        response: httpx.Response,
        context: dict[str, Any] | None = None,
    ) -> AppError:
        """
        将非成功的 HTTP 响应分类为 AppError

        Args:
            response: httpx 响应对象（状态码不在 2xx 范围内）
            context: 附加上下文

        Returns:
            AppError: 分类后的错误
        """
        status_code = response.status_code
        detail = _extract_error_detail(response)
        details = {"status_code": status_code}

        match status_code:
            case 401 | 403:
                return AppError(
                    message=f"Authentication failed: {detail}",
                    category=ErrorCategory.AUTH,
                    severity=ErrorSeverity.HIGH,
                    code=ErrorCode.AUTH_ERROR if status_code == 401 else ErrorCode.FORBIDDEN,
                    details=details,
                    retryable=False,
                    context=context,
                )
            case 429:
                return AppError(
                    message=f"Rate limit exceeded: {detail}",
                    category=ErrorCategory.NETWORK,
                    severity=ErrorSeverity.MEDIUM,
                    code=ErrorCode.RATE_LIMITED,
                    details=details,
                    retryable=True,
                    context=context,
                )
            case _ if 400 <= status_code < 500:
                return AppError(
                    message=f"Request rejected: {detail}",
                    category=ErrorCategory.VALIDATION,
                    severity=ErrorSeverity.LOW,
                    code=ErrorCode.INVALID_REQUEST,
                    details=details,
                    retryable=False,
                    context=context,
                )
            case _ if status_code >= 500:
                return AppError(
                    message=f"Server error: {detail}",
                    category=ErrorCategory.REMOTE,
                    severity=ErrorSeverity.HIGH,
                    code=ErrorCode.SERVER_ERROR,
                    details=details,
                    retryable=True,
                    context=context,
                )
            case _:
                return AppError(
                    message=f"Unexpected response ({status_code}): {detail}",
                    category=ErrorCategory.REMOTE,
                    severity=ErrorSeverity.HIGH,
                    code=ErrorCode.UNEXPECTED_RESPONSE,
                    details=details,
                    retryable=True,
                    context=context,
                )

    @classmethod
    def classify(
        cls,
        raw: BaseException | httpx.Response,
        context: dict[str, Any] | None = None,
    ) -> AppError:
        """
        将任意失败归一化为 AppError

        Args:
            raw: 捕获到的异常，或状态码非 2xx 的响应
            context: 附加上下文（已是 AppError 时合并进去）

        Returns:
            AppError: 分类后的错误
        """
        if isinstance(raw, AppError):
            return raw.with_context(**context) if context else raw

        if isinstance(raw, httpx.Response):
            return cls.classify_response(raw, context)

        if isinstance(raw, httpx.HTTPStatusError):
            return cls.classify_response(raw.response, context)

        if isinstance(raw, (httpx.TimeoutException, asyncio.TimeoutError)):
            return AppError(
                message=f"Request timed out: {raw}",
                category=ErrorCategory.NETWORK,
                severity=ErrorSeverity.MEDIUM,
                code=ErrorCode.TIMEOUT,
                retryable=True,
                context=context,
            )

        if isinstance(raw, (httpx.TransportError, ConnectionError)):
            return AppError(
                message=f"Network error: {raw}",
                category=ErrorCategory.NETWORK,
                severity=ErrorSeverity.MEDIUM,
                code=ErrorCode.CONNECTION_ERROR,
                retryable=True,
                context=context,
            )

        if isinstance(raw, ValidationError):
            return AppError(
                message=f"Invalid data: {raw.error_count()} validation error(s)",
                category=ErrorCategory.VALIDATION,
                severity=ErrorSeverity.LOW,
                code=ErrorCode.INVALID_ITEM,
                details=raw.errors(include_url=False),
                retryable=False,
                context=context,
            )

        if isinstance(raw, json.JSONDecodeError):
            return AppError(
                message=f"Malformed response body: {raw}",
                category=ErrorCategory.REMOTE,
                severity=ErrorSeverity.HIGH,
                code=ErrorCode.UNEXPECTED_RESPONSE,
                retryable=True,
                context=context,
            )

        return AppError(
            message=f"Unexpected error: {raw}" if str(raw) else f"Unexpected error: {type(raw).__name__}",
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.MEDIUM,
            code=ErrorCode.UNKNOWN,
            details={"exception_type": type(raw).__name__},
            retryable=False,
            context=context,
        )

    @classmethod
    def to_result(cls, response: httpx.Response) -> Result[Any]:
        """
        在传输边界一次性判定响应结果

        Returns:
            Ok(json body) 或 Err(AppError)
        """
        if not response.is_success:
            return Err(cls.classify_response(response))
        if not response.content:
            return Ok(None)
        try:
            return Ok(response.json())
        except json.JSONDecodeError as e:
            return Err(cls.classify(e))
