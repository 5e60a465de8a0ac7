"""
错误上报器

显式注入到各组件的错误上下文对象：
- 按严重程度记录日志
- 保留最近的错误记录（有界）
- 提供统计信息与展示方式（提示 / 告警）
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum

from leadexport.infra.errors import AppError, ErrorCategory, ErrorSeverity

logger = logging.getLogger(__name__)


class Presentation(str, Enum):
    """错误展示方式"""

    NOTICE = "notice"
    ALERT = "alert"


# 面向用户的友好提示
USER_MESSAGES: dict[ErrorCategory, str] = {
    ErrorCategory.NETWORK: "Network problem while contacting the remote service. Please try again.",
    ErrorCategory.REMOTE: "The remote service reported an error. Please try again later.",
    ErrorCategory.VALIDATION: "Please check your input and try again.",
    ErrorCategory.AUTH: "Authentication failed. Please check your API key.",
    ErrorCategory.PERMISSION: "You do not have permission to perform this action.",
    ErrorCategory.BUSINESS: "The operation could not be completed.",
}

FALLBACK_MESSAGE = "An unexpected error occurred. Please try again."

_LOG_LEVELS = {
    ErrorSeverity.LOW: logging.INFO,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.ERROR,
}


@dataclass
class ErrorStats:
    """错误统计"""

    total: int
    by_category: dict[str, int] = field(default_factory=dict)
    by_severity: dict[str, int] = field(default_factory=dict)
    recent: list[AppError] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "by_category": dict(self.by_category),
            "by_severity": dict(self.by_severity),
            "recent": [e.to_dict() for e in self.recent],
        }


class ErrorReporter:
    """错误上报器"""

    def __init__(self, limit: int = 100):
        """
        初始化错误上报器

        Args:
            limit: 保留的最近错误条数
        """
        self._errors: deque[AppError] = deque(maxlen=max(1, limit))

    def report(self, error: AppError) -> AppError:
        """
        记录并输出错误日志

        Args:
            error: 已分类的错误

        Returns:
            AppError: 原错误，便于链式使用
        """
        self._errors.append(error)
        logger.log(
            _LOG_LEVELS.get(error.severity, logging.WARNING),
            f"[{error.category.value.upper()}] {error.message} "
            f"(code={error.code}, retryable={error.retryable}, context={error.context})",
        )
        return error

    @staticmethod
    def presentation(error: AppError) -> Presentation:
        """高/严重级别以告警展示，其余以提示展示"""
        if error.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            return Presentation.ALERT
        return Presentation.NOTICE

    @staticmethod
    def user_message(error: AppError) -> str:
        """获取面向用户的错误描述"""
        return USER_MESSAGES.get(error.category) or error.message or FALLBACK_MESSAGE

    def stats(self) -> ErrorStats:
        """按类别和严重程度统计已记录的错误"""
        by_category = {c.value: 0 for c in ErrorCategory}
        by_severity = {s.value: 0 for s in ErrorSeverity}
        for error in self._errors:
            by_category[error.category.value] += 1
            by_severity[error.severity.value] += 1
        return ErrorStats(
            total=len(self._errors),
            by_category=by_category,
            by_severity=by_severity,
            recent=list(self._errors)[-10:],
        )

    def clear(self) -> None:
        """清空错误记录"""
        self._errors.clear()

    def __len__(self) -> int:
        return len(self._errors)
